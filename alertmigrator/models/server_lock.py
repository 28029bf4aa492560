from __future__ import annotations

from sqlalchemy import BigInteger, Column, Integer, String

from alertmigrator.db import Base


class ServerLock(Base):
    __tablename__ = "server_lock"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    operation_uid = Column(String(100), nullable=False, unique=True)
    version = Column(BigInteger, nullable=False, default=0)
    last_execution = Column(BigInteger, nullable=False, default=0)  # unix seconds
