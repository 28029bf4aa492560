import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from alertmigrator import models  # noqa: F401
from alertmigrator.config import Settings
from alertmigrator.db import Base
from alertmigrator.services.migration_service import MigrationService
from alertmigrator.services.migration_store import SqlMigrationStore
from tests.fakes import FakeEncryptionService, FakeFolderService, FakePermissionService, FakeValidator


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; emit it ourselves.
    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def app_settings(tmp_path):
    return Settings(DATA_PATH=str(tmp_path / "data"), _env_file=None)


@pytest.fixture
def folder_service():
    return FakeFolderService()


@pytest.fixture
def permission_service():
    return FakePermissionService()


@pytest.fixture
def encryption_service():
    return FakeEncryptionService()


@pytest.fixture
def validator():
    return FakeValidator()


@pytest.fixture
def store(db, folder_service, app_settings):
    return SqlMigrationStore(db, folder_service, app_settings.DATA_PATH)


@pytest.fixture
def service(session_factory, folder_service, permission_service, encryption_service, validator, app_settings):
    return MigrationService(
        session_factory,
        folder_service,
        permission_service,
        encryption_service,
        notifier_validator=validator,
        settings=app_settings,
    )
