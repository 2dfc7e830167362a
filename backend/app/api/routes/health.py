from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text

from app.core.config import get_settings
from app.db.bootstrap import missing_schema_items
from app.db.session import engine
from app.models.sync_outbox import SyncOutboxMessage

router = APIRouter()

settings = get_settings()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    db_ok = True
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    db_error: str | None = None
    outbox: dict[str, int] = {}

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            missing_tables, missing_columns = missing_schema_items(connection)
            if "sync_outbox" not in missing_tables:
                rows = connection.execute(
                    select(SyncOutboxMessage.status, func.count(SyncOutboxMessage.id)).group_by(SyncOutboxMessage.status)
                ).all()
                outbox = {status.value: int(count) for status, count in rows}
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    schema_ok = not missing_tables and not missing_columns
    ready = db_ok and schema_ok

    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "ok": db_ok,
            "schema_ok": schema_ok,
            "missing_tables": missing_tables,
            "missing_columns": missing_columns,
            "error": db_error,
        },
        "sis": {
            "base_url": settings.sis_base_url,
            "sync_enabled": settings.sis_sync_enabled,
            "outbound_configured": bool(settings.sis_shared_secret and settings.sis_hrms_api_key),
            "inbound_callers": sorted(settings.inbound_api_keys()),
            "outbox": outbox,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
