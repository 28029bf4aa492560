from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    echo=False,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def uses_case_insensitive_collation(bind: Engine, override: Optional[bool] = None) -> bool:
    # MySQL-family default collations compare strings case-insensitively.
    if override is None:
        override = settings.CASE_INSENSITIVE_TITLES
    if override is not None:
        return bool(override)
    return bind.dialect.name in ("mysql", "mariadb")
