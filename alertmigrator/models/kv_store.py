from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text, UniqueConstraint

from alertmigrator.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KVStoreEntry(Base):
    __tablename__ = "kv_store"
    __table_args__ = (UniqueConstraint("org_id", "namespace", "key", name="uq_kv_store_org_namespace_key"),)

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False)
    namespace = Column(String(190), nullable=False)
    key = Column(String(190), nullable=False)
    value = Column(Text, nullable=False, default="")

    created = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
