from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from alertmigrator.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertRule(Base):
    """Unified alerting rule."""

    __tablename__ = "alert_rule"
    __table_args__ = (
        UniqueConstraint("org_id", "uid", name="uq_alert_rule_org_uid"),
        UniqueConstraint("org_id", "namespace_uid", "title", name="uq_alert_rule_org_namespace_title"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False, index=True)
    uid = Column(String(40), nullable=False)
    title = Column(String(190), nullable=False)

    condition = Column(String(190), nullable=False)
    data = Column(JSON, nullable=False, default=list)

    interval_seconds = Column(BigInteger, nullable=False, default=60)
    version = Column(Integer, nullable=False, default=1)

    namespace_uid = Column(String(40), nullable=False)
    rule_group = Column(String(190), nullable=False)
    rule_group_idx = Column(Integer, nullable=False, default=1)

    dashboard_uid = Column(String(40), nullable=True)
    panel_id = Column(BigInteger, nullable=True)

    no_data_state = Column(String(15), nullable=False, default="NoData")
    exec_err_state = Column(String(15), nullable=False, default="Alerting")
    for_ns = Column("for", BigInteger, nullable=False, default=0)

    annotations = Column(JSON, nullable=False, default=dict)
    labels = Column(JSON, nullable=False, default=dict)
    is_paused = Column(Boolean, nullable=False, default=False)

    updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class AlertRuleVersion(Base):
    __tablename__ = "alert_rule_version"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    rule_org_id = Column(BigInteger, nullable=False, index=True)
    rule_uid = Column(String(40), nullable=False)
    rule_namespace_uid = Column(String(40), nullable=False)
    rule_group = Column(String(190), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    title = Column(String(190), nullable=False)
    condition = Column(String(190), nullable=False)
    data = Column(JSON, nullable=False, default=list)
    interval_seconds = Column(BigInteger, nullable=False, default=60)
    annotations = Column(JSON, nullable=False, default=dict)
    labels = Column(JSON, nullable=False, default=dict)
    message = Column(Text, nullable=True)

    created = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ProvenanceType(Base):
    __tablename__ = "provenance_type"
    __table_args__ = (UniqueConstraint("record_type", "record_key", "org_id", name="uq_provenance_type"),)

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False)
    record_key = Column(String(190), nullable=False)
    record_type = Column(String(190), nullable=False)
    provenance = Column(String(190), nullable=False)
