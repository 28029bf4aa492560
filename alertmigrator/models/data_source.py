from __future__ import annotations

from sqlalchemy import BigInteger, Column, Integer, String

from alertmigrator.db import Base


class DataSource(Base):
    __tablename__ = "data_source"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    org_id = Column(BigInteger, nullable=False, index=True)
    uid = Column(String(40), nullable=False)
    name = Column(String(190), nullable=False)
    type = Column(String(255), nullable=False)
