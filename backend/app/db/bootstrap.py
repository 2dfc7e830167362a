from __future__ import annotations

import logging

from sqlalchemy import inspect

import app.models  # noqa: F401  registers every table on Base.metadata
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role", "is_active"},
    "faculty": {"id", "user_id", "employee_id", "employment_status", "employee_type", "is_deleted"},
    "class_sections": {"id", "name", "is_deleted"},
    "schedules": {"id", "faculty_id", "class_section_id", "day", "time", "sis_schedule_id"},
    "schedule_slot_claims": {"schedule_id", "scope", "owner_id", "day", "minute"},
    "substitute_assignments": {"id", "schedule_id", "original_faculty_id", "status"},
    "sync_outbox": {"id", "endpoint", "payload", "status", "attempts", "next_attempt_at"},
}


def missing_schema_items(connection) -> tuple[list[str], dict[str, list[str]]]:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    for table_name, required in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            missing_tables.append(table_name)
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(required - existing)
        if missing:
            missing_columns[table_name] = missing
    return sorted(missing_tables), missing_columns


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Alembic owns real migrations; this only fills in tables absent from a fresh database.
        Base.metadata.create_all(bind=engine)
        with engine.begin() as connection:
            missing_tables, missing_columns = missing_schema_items(connection)
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
        if missing_columns:
            flat = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
            raise RuntimeError(f"Missing required columns: {', '.join(flat)}; run alembic upgrade head")
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
