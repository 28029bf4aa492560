import logging

from alertmigrator.config import Settings, configure_logging


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("MIGRATION_LOCK_SECONDS", raising=False)
    s = Settings(_env_file=None)
    assert s.MIGRATION_LOCK_SECONDS == 600
    assert s.BASE_INTERVAL_SECONDS == 10
    assert s.CASE_INSENSITIVE_TITLES is None


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("FORCE_MIGRATION", "true")
    monkeypatch.setenv("DATA_PATH", "/var/lib/alerts")
    s = Settings(_env_file=None)
    assert s.FORCE_MIGRATION is True
    assert s.DATA_PATH == "/var/lib/alerts"


def test_configure_logging_installs_single_handler():
    logger = configure_logging("debug")
    configure_logging("debug")
    assert logger.name == "alertmigrator"
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
