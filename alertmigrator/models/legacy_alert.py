from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text

from alertmigrator.db import Base


class LegacyAlert(Base):
    """Dashboard panel alert (legacy alerting). Read-only for the migration."""

    __tablename__ = "alert"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    version = Column(BigInteger, nullable=False, default=0)
    org_id = Column(BigInteger, nullable=False, index=True)
    dashboard_id = Column(BigInteger, nullable=False, index=True)
    panel_id = Column(BigInteger, nullable=False)

    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False, default="")
    state = Column(String(190), nullable=False, default="unknown")

    # JSON blob: conditions, notifications, noDataState, executionErrorState, alertRuleTags
    settings = Column(Text, nullable=False, default="{}")

    frequency = Column(BigInteger, nullable=False, default=60)  # seconds
    for_ns = Column("for", BigInteger, nullable=False, default=0)  # nanoseconds

    silenced = Column(Boolean, nullable=False, default=False)
    execution_error = Column(Text, nullable=False, default="")

    created = Column(DateTime(timezone=True), nullable=True)
    updated = Column(DateTime(timezone=True), nullable=True)
