import pytest

from alertmigrator.models import ServerLock
from alertmigrator.services.errors import ServerLockExistsError
from alertmigrator.services.server_lock import ServerLockService


def test_runs_and_releases(session_factory, db):
    lock = ServerLockService(session_factory)
    assert lock.lock_execute_and_release("job", 600, lambda: 42) == 42
    assert db.query(ServerLock).count() == 0


def test_held_lock_is_not_taken(session_factory):
    lock = ServerLockService(session_factory, clock=lambda: 1000)
    calls = []

    def inner():
        with pytest.raises(ServerLockExistsError):
            lock.lock_execute_and_release("job", 600, lambda: calls.append("inner"))
        calls.append("outer")

    lock.lock_execute_and_release("job", 600, inner)
    assert calls == ["outer"]


def test_stale_lock_is_taken_over(session_factory, db):
    db.add(ServerLock(operation_uid="job", version=3, last_execution=100))
    db.commit()

    lock = ServerLockService(session_factory, clock=lambda: 100 + 601)
    assert lock.lock_execute_and_release("job", 600, lambda: "ran") == "ran"


def test_released_even_when_fn_fails(session_factory, db):
    lock = ServerLockService(session_factory)

    def boom():
        raise RuntimeError("fail")

    with pytest.raises(RuntimeError):
        lock.lock_execute_and_release("job", 600, boom)
    assert db.query(ServerLock).count() == 0
