"""Database bootstrap helpers for the ledger and order tables."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from paybridge.common.config import settings


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def build_engine(dsn: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""

    url = make_url(dsn)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def create_schema(bind: Engine) -> None:
    """Create all mapped tables (dev/test helper; production uses Alembic)."""

    # Model modules register their tables on `Base.metadata` at import time.
    import paybridge.services.ledger.models  # noqa: F401
    import paybridge.services.orders.models  # noqa: F401

    Base.metadata.create_all(bind)


# Single SQLAlchemy engine per process.
engine = build_engine(settings.database_dsn)
# `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
