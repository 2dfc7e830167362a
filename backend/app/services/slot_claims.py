from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInputError, ScheduleConflictError
from app.models.class_section import ClassSection
from app.models.faculty import Faculty
from app.models.schedule import Schedule, Weekday
from app.models.schedule_slot_claim import ClaimScope, ScheduleSlotClaim
from app.services.conflict_service import ConflictService, ProposedAssignment
from app.services.time_range import parse_time_range

logger = logging.getLogger(__name__)


def lock_slot_owners(db: Session, *, faculty_id: int, class_section_id: int) -> None:
    # Serializes writers per teacher and per section; SQLite compiles FOR UPDATE away.
    db.execute(select(Faculty.id).where(Faculty.id == faculty_id).with_for_update())
    db.execute(select(ClassSection.id).where(ClassSection.id == class_section_id).with_for_update())


def release_slots(db: Session, schedule_id: int) -> None:
    db.execute(delete(ScheduleSlotClaim).where(ScheduleSlotClaim.schedule_id == schedule_id))


def release_orphaned_claims(db: Session, *, faculty_id: int, class_section_id: int, day: Weekday) -> list[int]:
    """Drop claims held by orphaned schedules that touch this teacher or section on ``day``.

    A schedule is orphaned when its section or its teacher is missing or
    soft-deleted. The schedule rows stay in place for the offline cleanup script.
    """
    orphaned_ids = list(
        db.execute(
            select(Schedule.id)
            .outerjoin(ClassSection, ClassSection.id == Schedule.class_section_id)
            .outerjoin(Faculty, Faculty.id == Schedule.faculty_id)
            .where(
                Schedule.day == day,
                or_(Schedule.faculty_id == faculty_id, Schedule.class_section_id == class_section_id),
                or_(
                    ClassSection.id.is_(None),
                    ClassSection.is_deleted.is_(True),
                    Faculty.id.is_(None),
                    Faculty.is_deleted.is_(True),
                ),
            )
        ).scalars()
    )
    if orphaned_ids:
        logger.warning(
            "Releasing slot claims of orphaned schedules %s for faculty %s / section %s on %s",
            orphaned_ids,
            faculty_id,
            class_section_id,
            day.value,
        )
        db.execute(delete(ScheduleSlotClaim).where(ScheduleSlotClaim.schedule_id.in_(orphaned_ids)))
    return orphaned_ids


def claim_slots(db: Session, schedule: Schedule) -> None:
    time_range = parse_time_range(schedule.time)
    if time_range is None:
        raise InvalidInputError('Invalid time format. Expected format: "HH:MM-HH:MM"', details={"time": schedule.time})

    release_slots(db, schedule.id)
    release_orphaned_claims(
        db,
        faculty_id=schedule.faculty_id,
        class_section_id=schedule.class_section_id,
        day=schedule.day,
    )
    rows = []
    for scope, owner_id in (
        (ClaimScope.faculty, schedule.faculty_id),
        (ClaimScope.section, schedule.class_section_id),
    ):
        rows.extend(
            {
                "schedule_id": schedule.id,
                "scope": scope,
                "owner_id": owner_id,
                "day": schedule.day,
                "minute": minute,
            }
            for minute in time_range.minutes()
        )
    db.execute(insert(ScheduleSlotClaim), rows)
    db.flush()


@contextmanager
def slot_write_guard(
    db: Session,
    proposed: ProposedAssignment,
    *,
    exclude_schedule_id: int | None = None,
) -> Iterator[None]:
    """Turn a claim uniqueness violation into a conflict error for the caller."""
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "Concurrent write claimed faculty %s / section %s on %s %s first",
            proposed.faculty_id,
            proposed.class_section_id,
            proposed.day.value,
            proposed.time,
        )
        report = ConflictService(db).validate(proposed, exclude_schedule_id=exclude_schedule_id)
        raise ScheduleConflictError(
            "Schedule slot was taken by a concurrent change",
            conflicts=report.as_details(),
        ) from exc
