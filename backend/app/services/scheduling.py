from __future__ import annotations

import logging

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInputError, ResourceNotFoundError, ScheduleConflictError
from app.models.faculty import Faculty
from app.models.schedule import Schedule, Weekday
from app.models.subject import Subject
from app.models.substitute_assignment import SubstituteAssignment
from app.services.conflict_service import ConflictService, ProposedAssignment
from app.services.slot_claims import claim_slots, lock_slot_owners, release_slots, slot_write_guard
from app.services.time_range import parse_time_range

logger = logging.getLogger(__name__)


def get_schedule_or_404(db: Session, schedule_id: int) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise ResourceNotFoundError("Schedule", schedule_id)
    return schedule


def get_faculty_or_404(db: Session, faculty_id: int) -> Faculty:
    faculty = db.get(Faculty, faculty_id)
    if faculty is None or faculty.is_deleted:
        raise ResourceNotFoundError("Faculty", faculty_id)
    return faculty


def require_active_faculty(db: Session, faculty_id: int) -> Faculty:
    faculty = get_faculty_or_404(db, faculty_id)
    if not faculty.is_active:
        raise InvalidInputError(
            f"Faculty {faculty_id} is not active",
            details={"facultyId": faculty_id, "employmentStatus": faculty.employment_status.value},
        )
    return faculty


def _require_subject(db: Session, subject_id: int) -> Subject:
    subject = db.get(Subject, subject_id)
    if subject is None or subject.is_deleted:
        raise ResourceNotFoundError("Subject", subject_id)
    return subject


def _validate_or_raise(
    db: Session,
    proposed: ProposedAssignment,
    *,
    exclude_schedule_id: int | None = None,
) -> None:
    lock_slot_owners(db, faculty_id=proposed.faculty_id, class_section_id=proposed.class_section_id)
    report = ConflictService(db).validate(proposed, exclude_schedule_id=exclude_schedule_id)
    if report.has_conflicts:
        raise ScheduleConflictError(
            f"Schedule conflicts detected ({len(report.conflicts)})",
            conflicts=report.as_details(),
        )


def _default_duration(time: str) -> int:
    parsed = parse_time_range(time)
    return parsed.duration_minutes if parsed is not None else 60


def assign_schedule(
    db: Session,
    *,
    faculty_id: int,
    subject_id: int,
    class_section_id: int,
    day: Weekday,
    time: str,
    duration_minutes: int | None = None,
    sis_schedule_id: int | None = None,
) -> Schedule:
    """Validate and stage a new schedule. The caller commits."""
    require_active_faculty(db, faculty_id)
    _require_subject(db, subject_id)
    proposed = ProposedAssignment(
        faculty_id=faculty_id,
        subject_id=subject_id,
        class_section_id=class_section_id,
        day=day,
        time=time,
    )
    with slot_write_guard(db, proposed):
        _validate_or_raise(db, proposed)
        schedule = Schedule(
            faculty_id=faculty_id,
            subject_id=subject_id,
            class_section_id=class_section_id,
            day=day,
            time=time,
            duration_minutes=duration_minutes or _default_duration(time),
            sis_schedule_id=sis_schedule_id,
        )
        db.add(schedule)
        db.flush()
        claim_slots(db, schedule)
    logger.info(
        "Staged schedule %s: faculty %s, section %s, %s %s",
        schedule.id,
        faculty_id,
        class_section_id,
        day.value,
        time,
    )
    return schedule


def update_schedule(
    db: Session,
    schedule: Schedule,
    *,
    faculty_id: int,
    subject_id: int,
    class_section_id: int,
    day: Weekday,
    time: str,
    duration_minutes: int | None = None,
) -> Schedule:
    if faculty_id != schedule.faculty_id:
        require_active_faculty(db, faculty_id)
    _require_subject(db, subject_id)
    proposed = ProposedAssignment(
        faculty_id=faculty_id,
        subject_id=subject_id,
        class_section_id=class_section_id,
        day=day,
        time=time,
    )
    schedule_id = schedule.id
    with slot_write_guard(db, proposed, exclude_schedule_id=schedule_id):
        _validate_or_raise(db, proposed, exclude_schedule_id=schedule_id)
        schedule.faculty_id = faculty_id
        schedule.subject_id = subject_id
        schedule.class_section_id = class_section_id
        schedule.day = day
        schedule.time = time
        schedule.duration_minutes = duration_minutes or _default_duration(time)
        db.flush()
        claim_slots(db, schedule)
    return schedule


def reassign_faculty(db: Session, schedule: Schedule, new_faculty_id: int) -> Schedule:
    """Move a schedule to another teacher after re-validating the slot for them."""
    proposed = ProposedAssignment(
        faculty_id=new_faculty_id,
        subject_id=schedule.subject_id,
        class_section_id=schedule.class_section_id,
        day=schedule.day,
        time=schedule.time,
    )
    schedule_id = schedule.id
    with slot_write_guard(db, proposed, exclude_schedule_id=schedule_id):
        _validate_or_raise(db, proposed, exclude_schedule_id=schedule_id)
        schedule.faculty_id = new_faculty_id
        db.flush()
        claim_slots(db, schedule)
    return schedule


def delete_schedule(db: Session, schedule: Schedule) -> None:
    release_slots(db, schedule.id)
    db.execute(delete(SubstituteAssignment).where(SubstituteAssignment.schedule_id == schedule.id))
    db.delete(schedule)
    db.flush()
