import base64

import pytest

from alertmigrator.schemas.legacy import LegacyChannel
from alertmigrator.services.channels import (
    DEFAULT_RECEIVER_NAME,
    DISABLED_REPEAT_INTERVAL,
    ChannelMigrator,
    create_base_config,
    create_route,
    get_or_create_nested_legacy_route,
)
from alertmigrator.services.errors import DiscontinuedChannelError, InvalidAlertmanagerConfigError
from alertmigrator.services.notifier import IntegrationValidator
from alertmigrator.schemas.amconfig import PostableUserConfig
from tests.factories import encrypted
from tests.fakes import FakeEncryptionService, FakeValidator


def _channel(**kw):
    base = dict(id=1, org_id=1, uid="c1", name="Ops", type="slack", settings={"url": "https://x"})
    base.update(kw)
    return LegacyChannel(**base)


@pytest.fixture
def migrator():
    return ChannelMigrator(FakeEncryptionService())


def _decrypt(value):
    return base64.b64decode(value)[len(b"enc:"):].decode()


def test_base_config_shape():
    config, nested = create_base_config()
    root = config.alertmanager_config.route
    assert root.receiver == DEFAULT_RECEIVER_NAME
    assert root.group_by == ["grafana_folder", "alertname"]
    assert root.routes[0] is nested
    assert nested.object_matchers[0].model_dump() == ["__use_legacy_channels__", "=", "true"]
    assert config.alertmanager_config.receivers[0].name == DEFAULT_RECEIVER_NAME


def test_nested_route_is_recreated_first():
    config, _ = create_base_config()
    config.alertmanager_config.route.routes = []
    nested = get_or_create_nested_legacy_route(config)
    assert config.alertmanager_config.route.routes == [nested]
    assert get_or_create_nested_legacy_route(config) is nested


def test_route_for_default_channel_matches_everything():
    route = create_route(_channel(is_default=True), "Ops")
    assert route.object_matchers[0].model_dump() == ["alertname", "=~", ".+"]
    assert route.continue_ is True


def test_route_for_regular_channel_uses_contact_label():
    route = create_route(_channel(uid="abc"), "Ops")
    assert route.object_matchers[0].model_dump() == ["__contacts_abc__", "=", "true"]


def test_repeat_interval():
    assert create_route(_channel(), "Ops").repeat_interval == DISABLED_REPEAT_INTERVAL == "52w"
    assert create_route(_channel(send_reminder=True, frequency_seconds=900), "Ops").repeat_interval == "15m"


def test_plain_secrets_move_to_secure_settings(migrator):
    settings, secure = migrator.migrate_settings_to_secure_settings(
        "slack", {"url": "https://hook", "recipient": "#ops"}, {}
    )
    assert settings == {"recipient": "#ops"}
    assert _decrypt(secure["url"]) == "https://hook"


def test_existing_secure_value_wins(migrator):
    settings, secure = migrator.migrate_settings_to_secure_settings(
        "slack", {"url": "https://plain"}, {"url": encrypted("https://secret")}
    )
    assert settings == {"url": "https://plain"}
    assert _decrypt(secure["url"]) == "https://secret"


def test_discontinued_channel(migrator):
    with pytest.raises(DiscontinuedChannelError):
        migrator.create_receiver(_channel(type="hipchat"))

    pair, receiver, route = migrator.migrate_channel(_channel(type="sensu"))
    assert receiver is None and route is None
    assert "discontinued" in pair.error
    assert pair.contact_point is None


def test_migrate_channels_appends_receivers_and_routes(migrator):
    config, nested = create_base_config()
    pairs = migrator.migrate_channels(
        config, [_channel(id=1, uid="d", name="Default", is_default=True), _channel(id=2, uid="c2", name="Team")]
    )
    assert [p.contact_point.name for p in pairs] == ["Default", "Team"]
    assert pairs[1].contact_point.route_label == "__contacts_c2__"
    assert [r.receiver for r in nested.routes] == ["Default", "Team"]
    names = [r.name for r in config.alertmanager_config.receivers]
    assert names == [DEFAULT_RECEIVER_NAME, "Default", "Team"]


def test_remove_contact_point(migrator):
    config, nested = create_base_config()
    pairs = migrator.migrate_channels(config, [_channel(id=1, uid="a", name="A"), _channel(id=2, uid="b", name="B")])
    ChannelMigrator.remove_contact_point(config, pairs[0])
    assert [r.receiver for r in nested.routes] == ["B"]
    assert "A" not in [r.name for r in config.alertmanager_config.receivers]


def test_config_json_roundtrip_keeps_matchers(migrator):
    config, _ = create_base_config()
    migrator.migrate_channels(config, [_channel()])
    again = PostableUserConfig.from_json(config.to_json())
    nested = again.alertmanager_config.route.routes[0]
    assert nested.routes[0].object_matchers[0].name == "__contacts_c1__"
    assert '"continue":true' in config.to_json()


def test_validate_config_wraps_validator_errors(migrator):
    config, _ = create_base_config()
    migrator.migrate_channels(config, [_channel(type="webhook", settings={"url": "https://x"})])
    migrator.validate_config(config, FakeValidator())
    with pytest.raises(InvalidAlertmanagerConfigError):
        migrator.validate_config(config, FakeValidator(failing={"webhook"}))


def test_integration_validator_reads_secure_settings(migrator):
    config, _ = create_base_config()
    migrator.migrate_channels(config, [_channel(settings={"url": "https://hook"})])
    # url was moved into secure settings and is decrypted for validation
    migrator.validate_config(config, IntegrationValidator())

    bad, _ = create_base_config()
    migrator.migrate_channels(bad, [_channel(type="email", settings={})])
    with pytest.raises(InvalidAlertmanagerConfigError):
        migrator.validate_config(bad, IntegrationValidator())


def test_remove_contact_point_without_ledger_contact_point(migrator):
    config, nested = create_base_config()
    pairs = migrator.migrate_channels(config, [_channel(id=1, uid="c1", name="Ops"), _channel(id=2, uid="c2", name="Team")])
    stale = pairs[0].model_copy(deep=True)
    stale.contact_point = None

    ChannelMigrator.remove_contact_point(config, stale)
    assert [r.name for r in config.alertmanager_config.receivers] == [DEFAULT_RECEIVER_NAME, "Team"]
    assert [r.receiver for r in nested.routes] == ["Team"]


def test_migrating_a_channel_again_replaces_its_receiver(migrator):
    config, nested = create_base_config()
    migrator.migrate_channels(config, [_channel(uid="c1", name="Ops")])
    migrator.migrate_channels(config, [_channel(uid="c1", name="Ops")])

    assert [r.name for r in config.alertmanager_config.receivers] == [DEFAULT_RECEIVER_NAME, "Ops"]
    assert len(nested.routes) == 1
