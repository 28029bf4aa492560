import pytest

from alertmigrator.models import AlertRule, AlertRuleVersion, KVStoreEntry, ProvenanceType
from alertmigrator.schemas.ledger import OrgMigrationState
from alertmigrator.schemas.unified import AlertQuery, UnifiedAlertRule
from alertmigrator.services.channels import create_base_config
from alertmigrator.services.errors import DuplicateTitleError, NotFoundError
from tests import factories


def _rule(uid="r1", title="High CPU", namespace_uid="f1"):
    return UnifiedAlertRule(
        uid=uid,
        org_id=1,
        title=title,
        condition="B",
        data=[AlertQuery(ref_id="A", datasource_uid="prom", model={"refId": "A"})],
        namespace_uid=namespace_uid,
        rule_group="Hosts - 1",
        for_seconds=60,
    )


def test_migrated_flag_and_state_roundtrip(store):
    assert store.is_migrated(1) is False
    store.set_migrated(1, True)
    assert store.is_migrated(1) is True

    state = OrgMigrationState(org_id=1, created_folders=["f1"], errors=["x"])
    store.set_org_migration_state(1, state)
    loaded = store.get_org_migration_state(1)
    assert loaded.created_folders == ["f1"]
    assert loaded.errors == ["x"]

    row = store.db.query(KVStoreEntry).filter(KVStoreEntry.key == "stateSummary").one()
    assert '"createdFolders"' in row.value


def test_empty_state_when_nothing_stored(store):
    state = store.get_org_migration_state(3)
    assert state.org_id == 3
    assert state.migrated_dashboards == []


def test_dashboard_alert_reads(store, db):
    factories.add_dashboard(db, id=10)
    factories.add_alert(db, dashboard_id=10, panel_id=2, for_seconds=120)
    factories.add_alert(db, dashboard_id=10, panel_id=1)
    factories.add_alert(db, dashboard_id=11, panel_id=1)
    factories.add_alert(db, org_id=2, dashboard_id=12, panel_id=1)

    by_dash, count = store.get_org_dashboard_alerts(1)
    assert count == 3
    assert sorted(by_dash) == [10, 11]
    assert [a.panel_id for a in by_dash[10]] == [1, 2]
    assert by_dash[10][1].for_seconds == 120

    alert = store.get_dashboard_alert(1, 10, 2)
    assert alert.parsed_settings().conditions

    with pytest.raises(NotFoundError):
        store.get_dashboard_alert(1, 10, 99)
    with pytest.raises(NotFoundError):
        store.get_dashboard(1, 11)


def test_provisioned(store, db):
    factories.add_dashboard(db, id=10, uid="plain")
    factories.add_dashboard(db, id=11, uid="prov", provisioned=True)
    assert store.is_provisioned(1, "plain") is False
    assert store.is_provisioned(1, "prov") is True


def test_channels_default_first_and_uid_lookup(store, db):
    c1 = factories.add_channel(db, uid="a", name="A")
    factories.add_channel(db, uid="b", name="B", is_default=True, secure_settings={"token": "s"})
    channels = store.get_notification_channels(1)
    assert [c.uid for c in channels] == ["b", "a"]
    assert channels[0].secure_settings["token"] == factories.encrypted("s")
    assert store.get_alert_notification_uid_with_id(1, c1.id) == "a"
    with pytest.raises(NotFoundError):
        store.get_alert_notification_uid_with_id(1, 999)


def test_insert_rule_writes_version_and_provenance(store):
    store.insert_alert_rule(_rule(), provisioned=True)
    row = store.db.query(AlertRule).one()
    assert row.for_ns == 60_000_000_000
    assert row.data[0]["relative_time_range"] == {"from": 0, "to": 0}
    assert store.db.query(AlertRuleVersion).count() == 1
    assert store.db.query(ProvenanceType).one().provenance == "upgrade"


def test_duplicate_title_raises_and_keeps_session_usable(store):
    store.insert_alert_rule(_rule())
    with pytest.raises(DuplicateTitleError):
        store.insert_alert_rule(_rule(uid="r2"))
    # Same title in another folder is fine.
    store.insert_alert_rule(_rule(uid="r3", namespace_uid="f2"))
    assert store.db.query(AlertRule).count() == 2


def test_delete_alert_rules(store):
    store.insert_alert_rule(_rule("r1", "one"))
    store.insert_alert_rule(_rule("r2", "two"))
    assert store.delete_alert_rules(1, ["r1"]) == 1
    assert [r.uid for r in store.db.query(AlertRule).all()] == ["r2"]
    assert [v.rule_uid for v in store.db.query(AlertRuleVersion).all()] == ["r2"]


def test_alertmanager_configuration_latest_wins(store):
    assert store.get_alertmanager_configuration(1) is None
    config, _ = create_base_config()
    store.save_alertmanager_configuration(1, config)
    config.alertmanager_config.route.receiver = "changed"
    store.save_alertmanager_configuration(1, config)
    assert store.get_alertmanager_configuration(1).alertmanager_config.route.receiver == "changed"


def test_revert_org_only_deletes_created_folders(store, folder_service):
    folder_service.add(1, "created", "Created by migration")
    folder_service.add(1, "user", "User folder")
    store.insert_alert_rule(_rule(namespace_uid="user"))
    store.set_org_migration_state(1, OrgMigrationState(org_id=1, created_folders=["created"]))
    store.set_migrated(1, True)

    store.revert_org(1)

    assert folder_service.deleted == ["created"]
    assert "user" in folder_service.folders
    assert store.db.query(AlertRule).count() == 0
    assert store.is_migrated(1) is False
    assert store.get_org_migration_state(1).created_folders == []
