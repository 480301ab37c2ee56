"""Engine, session factory and declarative base shared by both services."""

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from permagate.common.config import settings


def engine_options(dsn: str) -> dict:
    """Pool options per backend; in-memory SQLite must share one connection."""

    url = make_url(dsn)
    if url.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}
    options: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(settings.postgres_dsn, **engine_options(settings.postgres_dsn))
# Store methods hand rows back after their session closes.
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for the permagate tables."""

    pass
