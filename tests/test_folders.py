import pytest

from alertmigrator.schemas.folder import ResourcePermission
from alertmigrator.schemas.legacy import Dashboard
from alertmigrator.services.errors import FolderResolutionError
from alertmigrator.services.folders import (
    GENERAL_ALERTING_FOLDER_TITLE,
    MAX_FOLDER_NAME,
    FolderHelper,
    merge_permissions,
    permission_hash,
)
from tests.fakes import FakeFolderService, FakePermissionService


def _perm(**kw):
    return ResourcePermission(**kw)


@pytest.fixture
def folders():
    return FakeFolderService()


@pytest.fixture
def perms():
    return FakePermissionService()


@pytest.fixture
def helper(folders, perms):
    return FolderHelper(1, folders, perms)


def _dash(uid="d1", title="Hosts", folder_id=0):
    return Dashboard(id=10, uid=uid, org_id=1, title=title, folder_id=folder_id)


def test_merge_keeps_highest_level_per_principal():
    merged = merge_permissions(
        [_perm(team_id=5, permission="View"), _perm(user_id=2, permission="Edit")],
        [_perm(team_id=5, permission="Admin"), _perm(user_id=2, permission="View")],
    )
    by_principal = {p.principal(): p.permission for p in merged}
    assert by_principal == {("team", "5"): "Admin", ("user", "2"): "Edit"}


def test_hash_ignores_order_and_duplicates():
    a = [_perm(team_id=5, permission="View"), _perm(user_id=2, permission="Edit")]
    b = [_perm(user_id=2, permission="Edit"), _perm(team_id=5, permission="View"), _perm(team_id=5, permission="View")]
    assert permission_hash(a) == permission_hash(b)
    assert permission_hash(a) != permission_hash([_perm(team_id=5, permission="Edit")])


def test_root_dashboard_with_default_permissions_uses_general_alerting(helper, folders):
    dash_folder, folder = helper.resolve_or_create(_dash())
    assert dash_folder is None
    assert folder.title == GENERAL_ALERTING_FOLDER_TITLE
    assert [f.uid for f in helper.created_folders] == [folder.uid]

    _, again = helper.resolve_or_create(_dash(uid="d2"))
    assert again.uid == folder.uid
    assert len(folders.created) == 1


def test_existing_general_alerting_folder_is_reused(helper, folders):
    existing = folders.add(1, "general-alerting", GENERAL_ALERTING_FOLDER_TITLE)
    _, folder = helper.resolve_or_create(_dash())
    assert folder.uid == existing.uid
    assert helper.created_folders == []


def test_inherited_permissions_reuse_dashboard_folder(helper, folders, perms):
    parent = folders.add(1, "parent", "Team A", id=5)
    perms.dashboard_permissions["d1"] = [_perm(team_id=5, permission="Edit", is_inherited=True)]
    dash_folder, folder = helper.resolve_or_create(_dash(folder_id=5))
    assert dash_folder.uid == parent.uid
    assert folder.uid == parent.uid
    assert folders.created == []


def test_permissions_already_granted_by_folder_reuse_it(helper, folders, perms):
    folders.add(1, "parent", "Team A", id=5)
    perms.folder_permissions["parent"] = [_perm(team_id=5, permission="Edit")]
    perms.dashboard_permissions["d1"] = [_perm(team_id=5, permission="View")]
    _, folder = helper.resolve_or_create(_dash(folder_id=5))
    assert folder.uid == "parent"


def test_extra_dashboard_permissions_create_new_folder(helper, folders, perms):
    folders.add(1, "parent", "Team A", id=5)
    perms.folder_permissions["parent"] = [_perm(team_id=5, permission="Edit")]
    perms.dashboard_permissions["d1"] = [_perm(user_id=9, permission="Admin")]
    perms.dashboard_permissions["d2"] = [_perm(user_id=9, permission="Admin")]

    dash_folder, folder = helper.resolve_or_create(_dash("d1", "Hosts", 5))
    assert dash_folder.uid == "parent"
    assert folder.uid != "parent"
    qualifier = permission_hash(
        merge_permissions(perms.folder_permissions["parent"], perms.dashboard_permissions["d1"])
    )[:8]
    assert folder.title == f"Hosts Alerts - {qualifier}"
    granted = {p.principal(): p.permission for p in perms.folder_permissions[folder.uid]}
    assert granted == {("team", "5"): "Edit", ("user", "9"): "Admin"}

    # Same parent and same effective permissions share the folder.
    _, other = helper.resolve_or_create(_dash("d2", "Other", 5))
    assert other.uid == folder.uid
    assert len(folders.created) == 1


def test_root_dashboard_with_custom_permissions(helper, perms):
    perms.dashboard_permissions["d1"] = [_perm(user_id=3, permission="Edit")]
    dash_folder, folder = helper.resolve_or_create(_dash())
    assert dash_folder is None
    assert folder.title.startswith("Hosts Alerts - ")


def test_missing_folder_falls_back_to_general_alerting(helper):
    dash_folder, folder = helper.resolve_or_create(_dash(folder_id=77))
    assert dash_folder is None
    assert folder.title == GENERAL_ALERTING_FOLDER_TITLE


def test_long_dashboard_title_keeps_qualifier(helper, perms):
    perms.dashboard_permissions["d1"] = [_perm(user_id=3, permission="Edit")]
    _, folder = helper.resolve_or_create(_dash(title="t" * 400))
    assert len(folder.title) <= MAX_FOLDER_NAME
    assert folder.title.rsplit(" - ", 1)[1] and len(folder.title.rsplit(" - ", 1)[1]) == 8


def test_collaborator_errors_are_wrapped(folders):
    class Broken:
        def get_dashboard_permissions(self, *a, **kw):
            raise RuntimeError("boom")

        def get_folder_permissions(self, *a, **kw):
            return []

        def set_folder_permissions(self, *a, **kw):
            return []

    helper = FolderHelper(1, folders, Broken())
    with pytest.raises(FolderResolutionError):
        helper.resolve_or_create(_dash())
