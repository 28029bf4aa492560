# alertmigrator/services/server_lock.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from alertmigrator.models import ServerLock
from alertmigrator.services.errors import ServerLockExistsError

logger = logging.getLogger("alertmigrator.migration.lock")

T = TypeVar("T")


class ServerLockService:
    """
    Cross-process lock backed by the server_lock table. A lock older than
    max_interval_seconds is considered abandoned and can be taken over.

    Lock rows are written in their own short transactions so other instances
    see them while the locked work is still running.
    """

    def __init__(self, session_factory: sessionmaker, clock: Optional[Callable[[], float]] = None) -> None:
        self.session_factory = session_factory
        self._clock = clock or time.time

    def _now(self) -> int:
        return int(self._clock())

    def _acquire(self, db: Session, action: str, max_interval_seconds: int) -> None:
        now = self._now()
        row = db.query(ServerLock).filter(ServerLock.operation_uid == action).first()
        if row is None:
            db.add(ServerLock(operation_uid=action, version=1, last_execution=now))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ServerLockExistsError(f"there is already a lock for action {action!r}") from e
            return

        if row.last_execution and row.last_execution + int(max_interval_seconds) > now:
            raise ServerLockExistsError(f"there is already a lock for action {action!r}")

        # Stale lock: take it over only if nobody else did in between.
        updated = (
            db.query(ServerLock)
            .filter(ServerLock.id == row.id, ServerLock.version == row.version)
            .update({"version": row.version + 1, "last_execution": now}, synchronize_session=False)
        )
        db.commit()
        if updated != 1:
            raise ServerLockExistsError(f"there is already a lock for action {action!r}")
        logger.warning("Took over stale lock action=%s last_execution=%s", action, row.last_execution)

    def _release(self, action: str) -> None:
        db = self.session_factory()
        try:
            db.query(ServerLock).filter(ServerLock.operation_uid == action).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to release lock action=%s", action)
        finally:
            db.close()

    def lock_execute_and_release(self, action: str, max_interval_seconds: int, fn: Callable[[], T]) -> T:
        db = self.session_factory()
        try:
            self._acquire(db, action, max_interval_seconds)
        finally:
            db.close()

        try:
            return fn()
        finally:
            self._release(action)
