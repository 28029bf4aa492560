from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from alertmigrator.db import Base


class AlertNotification(Base):
    """Legacy notification channel."""

    __tablename__ = "alert_notification"
    __table_args__ = (UniqueConstraint("org_id", "uid", name="uq_alert_notification_org_uid"),)

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False, index=True)
    uid = Column(String(40), nullable=False)
    name = Column(String(190), nullable=False)
    type = Column(String(255), nullable=False)

    settings = Column(Text, nullable=False, default="{}")
    # JSON object key -> base64(encrypted bytes)
    secure_settings = Column(Text, nullable=True)

    is_default = Column(Boolean, nullable=False, default=False)
    send_reminder = Column(Boolean, nullable=False, default=False)
    frequency = Column(BigInteger, nullable=False, default=0)  # nanoseconds
    disable_resolve_message = Column(Boolean, nullable=False, default=False)

    created = Column(DateTime(timezone=True), nullable=True)
    updated = Column(DateTime(timezone=True), nullable=True)
