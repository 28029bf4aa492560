# alertmigrator/services/folders.py
from __future__ import annotations

import hashlib
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from alertmigrator.core.dedupe import generate_short_uid
from alertmigrator.schemas.folder import Folder, ResourcePermission, migration_user
from alertmigrator.schemas.legacy import Dashboard
from alertmigrator.services.collaborators import FolderService, PermissionService
from alertmigrator.services.errors import FolderResolutionError

logger = logging.getLogger("alertmigrator.folders")

# Folder for dashboards with custom permissions: "<dashboard title> Alerts - <permission hash>"
DASHBOARD_FOLDER = "{} Alerts - {}"
MAX_FOLDER_NAME = 255

GENERAL_ALERTING_FOLDER_TITLE = "General Alerting"

# Default access to content in the root (General) level.
DEFAULT_ROOT_PERMISSIONS = [
    ResourcePermission(built_in_role="Editor", permission="Edit", is_managed=False),
    ResourcePermission(built_in_role="Viewer", permission="View", is_managed=False),
]


def merge_permissions(*sets: Iterable[ResourcePermission]) -> List[ResourcePermission]:
    """Highest permission level per principal, in a stable order."""
    best: Dict[Tuple[str, str], ResourcePermission] = {}
    for perms in sets:
        for p in perms:
            key = p.principal()
            if key[1] in ("", "0"):
                continue
            current = best.get(key)
            if current is None or p.level() > current.level():
                best[key] = p
    out = []
    for key in sorted(best):
        p = best[key]
        out.append(
            ResourcePermission(
                user_id=p.user_id,
                team_id=p.team_id,
                built_in_role=p.built_in_role,
                permission=p.permission,
                is_managed=True,
                is_inherited=False,
            )
        )
    return out


def permission_hash(perms: Iterable[ResourcePermission]) -> str:
    entries = []
    for p in merge_permissions(perms):
        kind, ident = p.principal()
        entries.append(f"{kind}:{ident}:{p.level()}")
    return hashlib.sha256("|".join(sorted(entries)).encode("utf-8")).hexdigest()


class FolderHelper:
    """
    Picks the folder each migrated dashboard's rules go to. Caches lookups for
    the duration of one migration operation.
    """

    def __init__(self, org_id: int, folder_service: FolderService, permission_service: PermissionService) -> None:
        self.org_id = org_id
        self.folders = folder_service
        self.permissions = permission_service
        self.user = migration_user(org_id)

        self.created_folders: List[Folder] = []
        self.folder_cache: Dict[int, Optional[Folder]] = {}
        self.folder_permission_cache: Dict[str, List[ResourcePermission]] = {}
        # parent folder id (0 = root) -> permission hash -> migrated folder
        self.permissions_map: Dict[int, Dict[str, Folder]] = {}
        self._general_alerting: Optional[Folder] = None

    def _get_folder(self, folder_id: int) -> Optional[Folder]:
        if folder_id in self.folder_cache:
            return self.folder_cache[folder_id]
        try:
            f = self.folders.get(self.org_id, self.user, id=folder_id)
        except Exception as e:
            raise FolderResolutionError(f"failed to get folder {folder_id}: {e}") from e
        self.folder_cache[folder_id] = f
        return f

    def _get_folder_permissions(self, f: Folder) -> List[ResourcePermission]:
        if f.uid in self.folder_permission_cache:
            return self.folder_permission_cache[f.uid]
        try:
            perms = list(self.permissions.get_folder_permissions(self.org_id, self.user, f.uid))
        except Exception as e:
            raise FolderResolutionError(f"failed to get permissions for folder '{f.title}': {e}") from e
        self.folder_permission_cache[f.uid] = perms
        return perms

    def _get_dashboard_permissions(self, dash: Dashboard) -> List[ResourcePermission]:
        try:
            return list(self.permissions.get_dashboard_permissions(self.org_id, self.user, dash.uid))
        except Exception as e:
            raise FolderResolutionError(f"failed to get permissions for dashboard '{dash.title}': {e}") from e

    def _create_folder(self, title: str, permissions: List[ResourcePermission]) -> Folder:
        try:
            f = self.folders.create(self.org_id, self.user, title=title, uid=generate_short_uid())
        except Exception as e:
            raise FolderResolutionError(f"failed to create folder '{title}': {e}") from e
        self.created_folders.append(f)
        logger.info("Created folder for migrated alert rules org_id=%s folder_uid=%s title=%s", self.org_id, f.uid, title)
        if permissions:
            try:
                self.permissions.set_folder_permissions(self.org_id, f.uid, permissions)
            except Exception as e:
                raise FolderResolutionError(f"failed to set permissions on folder '{title}': {e}") from e
            self.folder_permission_cache[f.uid] = list(permissions)
        return f

    def general_alerting_folder(self) -> Folder:
        if self._general_alerting is not None:
            return self._general_alerting
        try:
            f = self.folders.get(self.org_id, self.user, title=GENERAL_ALERTING_FOLDER_TITLE)
        except Exception as e:
            raise FolderResolutionError(f"failed to get folder '{GENERAL_ALERTING_FOLDER_TITLE}': {e}") from e
        if f is None:
            f = self._create_folder(GENERAL_ALERTING_FOLDER_TITLE, [])
        self._general_alerting = f
        return f

    def resolve_or_create(self, dash: Dashboard) -> Tuple[Optional[Folder], Folder]:
        """
        (legacy folder or None, folder the rules go to). Raises
        FolderResolutionError; nothing else about the dashboard is changed.
        """
        dash_folder: Optional[Folder] = None
        if dash.folder_id and dash.folder_id > 0:
            dash_folder = self._get_folder(dash.folder_id)
            if dash_folder is None:
                logger.warning(
                    "Dashboard folder not found, using general alerting folder dashboard_uid=%s folder_id=%s",
                    dash.uid,
                    dash.folder_id,
                )

        parent_perms = self._get_folder_permissions(dash_folder) if dash_folder else list(DEFAULT_ROOT_PERMISSIONS)

        dash_perms = [p for p in self._get_dashboard_permissions(dash) if not p.is_inherited]
        if not dash_perms:
            return dash_folder, dash_folder or self.general_alerting_folder()

        merged = merge_permissions(parent_perms, dash_perms)
        h = permission_hash(merged)
        if h == permission_hash(parent_perms):
            # Dashboard permissions add nothing over what the folder already grants.
            return dash_folder, dash_folder or self.general_alerting_folder()

        parent_id = dash_folder.id if dash_folder else 0
        by_hash = self.permissions_map.setdefault(parent_id, {})
        if h in by_hash:
            return dash_folder, by_hash[h]

        qualifier = h[:8]
        room = MAX_FOLDER_NAME - len(DASHBOARD_FOLDER.format("", qualifier))
        title = DASHBOARD_FOLDER.format(dash.title[:room], qualifier)
        f = self._create_folder(title, merged)
        by_hash[h] = f
        return dash_folder, f
