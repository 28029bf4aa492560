from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text

from alertmigrator.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertConfiguration(Base):
    """Alertmanager configuration (receivers + routing tree) per org."""

    __tablename__ = "alert_configuration"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False, index=True)
    alertmanager_configuration = Column(Text, nullable=False)
    configuration_version = Column(String(3), nullable=False, default="v1")
    configuration_hash = Column(String(32), nullable=False, default="")
    default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class NgalertConfiguration(Base):
    __tablename__ = "ngalert_configuration"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False, unique=True)
    alertmanagers = Column(Text, nullable=True)
    send_alerts_to = Column(Integer, nullable=False, default=0)


class AlertInstance(Base):
    __tablename__ = "alert_instance"

    rule_org_id = Column(BigInteger, primary_key=True)
    rule_uid = Column(String(40), primary_key=True)
    labels_hash = Column(String(190), primary_key=True)
    labels = Column(Text, nullable=False, default="{}")
    current_state = Column(String(190), nullable=False, default="Normal")
