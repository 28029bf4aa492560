from __future__ import annotations

from sqlalchemy import BigInteger, Column, Integer, String

from alertmigrator.db import Base


class Org(Base):
    __tablename__ = "org"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    name = Column(String(190), nullable=False, unique=True)
