from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "classrooms": {"id", "tenant_id", "name", "floor", "capacity", "status"},
    "classroom_unavailabilities": {"id", "classroom_id", "start_at", "end_at", "substitute_classroom_id"},
    "subjects": {"id", "tenant_id", "code", "weekly_hours", "block_hours", "academic_period", "archived"},
    "faculty_preferences": {"id", "faculty_id", "subject_code", "academic_period", "submitted_at"},
    "timetables": {"id", "tenant_id", "academic_period", "days", "status", "revision"},
}


def missing_schema_objects(bind: Engine) -> list[str]:
    with bind.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                missing.append(table_name)
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing.extend(f"{table_name}.{column}" for column in sorted(required - existing))
        return missing


def init_db(bind: Engine | None = None) -> None:
    """Create missing tables and verify the columns the scheduling engine relies on.

    Existing tables are never altered; a schema that predates a column is
    reported and must be migrated out of band.
    """
    bind = bind or default_engine
    try:
        Base.metadata.create_all(bind=bind)
        missing = missing_schema_objects(bind)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Database bootstrap failed")
        raise RuntimeError("Database bootstrap failed") from exc
    if missing:
        raise RuntimeError(f"Missing required schema objects: {', '.join(missing)}")
    logger.info("Database schema ready (%d tables)", len(Base.metadata.tables))
