import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from app.db import bootstrap


def _memory_engine():
    return create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)


def test_init_db_creates_schema():
    engine = _memory_engine()
    bootstrap.init_db(engine)
    assert bootstrap.missing_schema_objects(engine) == []


def test_init_db_rejects_outdated_tables():
    engine = _memory_engine()
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE timetables (id VARCHAR(36) PRIMARY KEY, tenant_id VARCHAR(36))"))

    with pytest.raises(RuntimeError, match="timetables.revision"):
        bootstrap.init_db(engine)


def test_init_db_wraps_driver_failures(monkeypatch):
    def _fail(bind):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(bootstrap.Base.metadata, "create_all", _fail)
    with pytest.raises(RuntimeError, match="Database bootstrap failed"):
        bootstrap.init_db(_memory_engine())
