"""Engine options per database backend."""

from sqlalchemy.pool import StaticPool

from permagate.common.db import engine_options


def test_in_memory_sqlite_shares_one_connection():
    options = engine_options("sqlite://")

    assert options["poolclass"] is StaticPool
    assert options["connect_args"] == {"check_same_thread": False}


def test_file_sqlite_keeps_default_pool():
    assert "poolclass" not in engine_options("sqlite:////tmp/permagate.db")


def test_postgres_pings_pooled_connections():
    assert engine_options("postgresql+psycopg://u:p@db:5432/permagate") == {"pool_pre_ping": True}
