from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.faculty import Faculty
from app.models.sync_outbox import OutboxStatus, SyncOutboxMessage
from app.services.sis_client import (
    SisClient,
    SisContentTypeError,
    SisHttpError,
    SisNotConfiguredError,
    SisTransportError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 425, 429}


@dataclass
class SyncResult:
    synced: bool
    message: str
    success: bool = True
    error: str | None = None
    error_kind: str | None = None
    outbox_id: int | None = None

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "synced": self.synced,
            "message": self.message,
            "error": self.error,
            "errorKind": self.error_kind,
            "outboxId": self.outbox_id,
        }


@dataclass
class DrainSummary:
    attempted: int = 0
    delivered: int = 0
    retrying: int = 0
    failed: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_assignment_payload(sis_schedule_id: int, faculty: Faculty) -> dict:
    return {
        "scheduleId": sis_schedule_id,
        "employeeId": faculty.employee_id,
        "assigned": True,
        "teacher": {
            "teacherId": faculty.employee_id,
            "teacherName": faculty.name,
            "teacherEmail": faculty.email or "",
        },
    }


def enqueue_assignment_sync(
    db: Session,
    *,
    sis_schedule_id: int | None,
    faculty: Faculty,
    entity_type: str,
    entity_id: str,
) -> SyncOutboxMessage | SyncResult | None:
    """Stage an assignment push in the caller's transaction.

    Returns the outbox row to deliver after commit, a ``SyncResult`` when the
    push is skipped, or ``None`` when there is no SIS schedule to update.
    """
    if sis_schedule_id is None:
        return None
    settings = get_settings()
    if not settings.sis_sync_enabled:
        return SyncResult(synced=False, message="SIS sync is disabled (SIS_SYNC_ENABLED is not true)")
    if not settings.sis_shared_secret or not settings.sis_hrms_api_key:
        logger.warning("SIS sync skipped: shared secret or HRMS API key is not configured")
        return SyncResult(synced=False, message="SIS sync skipped: missing shared secret or API key")
    if not faculty.employee_id:
        logger.warning("SIS sync skipped: faculty %s has no employee ID", faculty.id)
        return SyncResult(synced=False, message=f"SIS sync skipped: faculty {faculty.id} has no employee ID")

    message = SyncOutboxMessage(
        endpoint=settings.sis_update_endpoint,
        payload=build_assignment_payload(sis_schedule_id, faculty),
        status=OutboxStatus.pending,
        attempts=0,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    db.add(message)
    db.flush()
    return message


def _mark_delivered(message: SyncOutboxMessage, now: datetime) -> None:
    message.status = OutboxStatus.delivered
    message.delivered_at = now
    message.next_attempt_at = None
    message.error_kind = None
    message.last_error = None


def _mark_failed(message: SyncOutboxMessage, kind: str, error: str) -> None:
    message.status = OutboxStatus.failed
    message.error_kind = kind
    message.last_error = error
    message.next_attempt_at = None


def _schedule_retry(message: SyncOutboxMessage, kind: str, error: str, now: datetime) -> bool:
    settings = get_settings()
    message.error_kind = kind
    message.last_error = error
    if message.attempts >= max(1, settings.sis_sync_max_attempts):
        message.status = OutboxStatus.failed
        message.next_attempt_at = None
        return False
    backoff = max(0, settings.sis_sync_retry_backoff_seconds) * message.attempts
    message.status = OutboxStatus.pending
    message.next_attempt_at = now + timedelta(seconds=backoff)
    return True


def deliver_message(
    db: Session,
    message: SyncOutboxMessage,
    *,
    client: SisClient | None = None,
    now: datetime | None = None,
) -> SyncResult:
    """Attempt one delivery and record the outcome on the outbox row (caller commits)."""
    client = client or SisClient()
    now = now or _utc_now()
    payload = message.payload or {}
    employee_id = payload.get("employeeId")
    message.attempts += 1

    try:
        client.post_signed(message.endpoint, payload)
    except SisNotConfiguredError as exc:
        message.attempts -= 1
        message.error_kind = exc.kind
        message.last_error = str(exc)
        return SyncResult(synced=False, message=f"Saved locally; {exc}", error=str(exc), error_kind=exc.kind, outbox_id=message.id)
    except SisContentTypeError as exc:
        _mark_failed(message, exc.kind, str(exc))
        return SyncResult(
            synced=False,
            message="Saved locally, but SIS returned a non-JSON response. Check the SIS base URL.",
            error=str(exc),
            error_kind=exc.kind,
            outbox_id=message.id,
        )
    except SisHttpError as exc:
        return _handle_http_error(message, exc, employee_id=employee_id, now=now)
    except SisTransportError as exc:
        will_retry = _schedule_retry(message, exc.kind, str(exc), now)
        logger.warning(
            "SIS sync message %s transport failure (attempt %s, retry=%s): %s",
            message.id,
            message.attempts,
            will_retry,
            exc,
        )
        return SyncResult(
            synced=False,
            message=(
                "Saved locally; SIS is unreachable and the update is queued for retry."
                if will_retry
                else "Saved locally; SIS is unreachable and retries are exhausted."
            ),
            error=str(exc),
            error_kind=exc.kind,
            outbox_id=message.id,
        )

    _mark_delivered(message, now)
    logger.info("SIS sync message %s delivered to %s", message.id, message.endpoint)
    return SyncResult(synced=True, message="Assignment synced to SIS successfully", outbox_id=message.id)


def _handle_http_error(
    message: SyncOutboxMessage,
    exc: SisHttpError,
    *,
    employee_id: str | None,
    now: datetime,
) -> SyncResult:
    status_code = exc.status_code
    if status_code == 404:
        _mark_failed(message, "endpoint_missing", str(exc))
        logger.warning("SIS endpoint %s not found (404); assignment saved locally only", message.endpoint)
        return SyncResult(
            synced=False,
            message="SIS sync endpoint not available (404). Assignment saved locally only.",
            error_kind="endpoint_missing",
            outbox_id=message.id,
        )
    if status_code == 409:
        current = exc.payload.get("currentTeacher") or {}
        if employee_id and current.get("teacherId") == employee_id:
            _mark_delivered(message, now)
            return SyncResult(
                synced=True,
                message="Schedule already has this teacher assigned in SIS. No update needed.",
                outbox_id=message.id,
            )
        current_name = current.get("teacherName") or current.get("teacherId") or "another teacher"
        _mark_failed(message, "sis_conflict", f"SIS already has {current_name} assigned")
        logger.warning("SIS schedule already assigned to %s; manual unassignment needed in SIS", current_name)
        return SyncResult(
            synced=False,
            message=(
                f"Assignment updated locally, but SIS already has {current_name} assigned. "
                "SIS does not support unassignment via API; unassign there first."
            ),
            error=f"Schedule already has {current_name} assigned in SIS",
            error_kind="sis_conflict",
            outbox_id=message.id,
        )
    if status_code in {401, 403}:
        _mark_failed(message, "auth", str(exc))
        logger.error("SIS rejected our credentials (%s); check shared secret and API key", status_code)
        return SyncResult(
            synced=False,
            message="Saved locally, but SIS rejected the request signature or API key.",
            error=str(exc),
            error_kind="auth",
            outbox_id=message.id,
        )
    if status_code >= 500 or status_code in RETRYABLE_STATUS_CODES:
        will_retry = _schedule_retry(message, exc.kind, str(exc), now)
        return SyncResult(
            synced=False,
            message=f"Saved locally; SIS error {status_code}" + (", queued for retry." if will_retry else "."),
            error=str(exc),
            error_kind=exc.kind,
            outbox_id=message.id,
        )
    _mark_failed(message, exc.kind, str(exc))
    return SyncResult(
        synced=False,
        message=f"Saved locally, but sync to SIS failed: {exc}",
        error=str(exc),
        error_kind=exc.kind,
        outbox_id=message.id,
    )


def _lock_pending(db: Session, message_id: int) -> SyncOutboxMessage | None:
    # Rows held by another worker are skipped; SQLite compiles the lock away.
    return db.execute(
        select(SyncOutboxMessage)
        .where(SyncOutboxMessage.id == message_id, SyncOutboxMessage.status == OutboxStatus.pending)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def deliver_after_commit(
    db: Session,
    staged: SyncOutboxMessage | SyncResult | None,
    *,
    client: SisClient | None = None,
) -> SyncResult | None:
    """Deliver a message staged by ``enqueue_assignment_sync`` once the local change is committed."""
    if staged is None or isinstance(staged, SyncResult):
        return staged
    message = _lock_pending(db, staged.id)
    if message is None:
        logger.info("SIS sync message %s is already being handled by another worker", staged.id)
        return SyncResult(
            synced=False,
            message="Saved locally; the SIS update is being delivered from the outbox.",
            outbox_id=staged.id,
        )
    result = deliver_message(db, message, client=client)
    db.commit()
    return result


def drain_outbox(
    db: Session,
    *,
    client: SisClient | None = None,
    limit: int = 50,
    now: datetime | None = None,
) -> DrainSummary:
    """Deliver due outbox rows one at a time, each under its own row lock."""
    now = now or _utc_now()
    client = client or SisClient()
    summary = DrainSummary()
    seen: list[int] = []
    while summary.attempted < limit:
        query = (
            select(SyncOutboxMessage)
            .where(
                SyncOutboxMessage.status == OutboxStatus.pending,
                or_(SyncOutboxMessage.next_attempt_at.is_(None), SyncOutboxMessage.next_attempt_at <= now),
            )
            .order_by(SyncOutboxMessage.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        if seen:
            query = query.where(SyncOutboxMessage.id.not_in(seen))
        message = db.execute(query).scalar_one_or_none()
        if message is None:
            break
        seen.append(message.id)
        summary.attempted += 1
        result = deliver_message(db, message, client=client, now=now)
        db.commit()
        if result.synced:
            summary.delivered += 1
        elif message.status == OutboxStatus.pending:
            summary.retrying += 1
        else:
            summary.failed += 1
    if summary.attempted:
        logger.info(
            "Drained SIS outbox: %s attempted, %s delivered, %s retrying, %s failed",
            summary.attempted,
            summary.delivered,
            summary.retrying,
            summary.failed,
        )
    return summary
