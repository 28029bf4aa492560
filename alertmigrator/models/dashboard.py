from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Column, Integer, String, UniqueConstraint

from alertmigrator.db import Base


class Dashboard(Base):
    __tablename__ = "dashboard"
    __table_args__ = (UniqueConstraint("org_id", "uid", name="uq_dashboard_org_uid"),)

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False, index=True)
    uid = Column(String(40), nullable=False)
    title = Column(String(189), nullable=False)
    folder_id = Column(BigInteger, nullable=False, default=0)  # 0 = General (root)
    is_folder = Column(Boolean, nullable=False, default=False)


class DashboardProvisioning(Base):
    __tablename__ = "dashboard_provisioning"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    dashboard_id = Column(BigInteger, nullable=False, index=True)
    name = Column(String(150), nullable=False)
    external_id = Column(String(2048), nullable=False, default="")
