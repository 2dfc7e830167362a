"""Who can cover a slot: active teachers with no overlapping class and no approved leave today."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInputError
from app.models.faculty import INACTIVE_EMPLOYMENT_STATUSES, Faculty
from app.models.leave import Leave, LeaveStatus
from app.models.schedule import Schedule, Weekday
from app.services.conflict_service import section_is_valid
from app.services.time_range import parse_time_range, ranges_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableTeacher:
    faculty_id: int
    employee_id: str | None
    name: str
    email: str | None
    position: str | None
    current_load: int

    def as_dict(self) -> dict:
        return {
            "facultyId": self.faculty_id,
            "employeeId": self.employee_id,
            "name": self.name,
            "email": self.email,
            "position": self.position,
            "currentLoad": self.current_load,
        }


def active_faculty(db: Session) -> list[Faculty]:
    rows = db.execute(
        select(Faculty)
        .where(
            Faculty.is_deleted.is_(False),
            Faculty.employment_status.not_in(INACTIVE_EMPLOYMENT_STATUSES),
        )
        .order_by(Faculty.id)
    ).unique().scalars()
    return [item for item in rows if item.is_active]


def faculty_on_leave(db: Session, faculty_ids: list[int], on_date: date) -> dict[int, Leave]:
    if not faculty_ids:
        return {}
    rows = db.execute(
        select(Leave)
        .where(
            Leave.faculty_id.in_(faculty_ids),
            Leave.status == LeaveStatus.approved,
            Leave.start_date <= on_date,
            Leave.end_date >= on_date,
        )
        .order_by(Leave.start_date, Leave.id)
    ).scalars()
    active: dict[int, Leave] = {}
    for leave in rows:
        active.setdefault(leave.faculty_id, leave)
    return active


def schedule_counts(db: Session, faculty_ids: list[int]) -> dict[int, int]:
    if not faculty_ids:
        return {}
    rows = db.execute(
        select(Schedule.faculty_id, func.count(Schedule.id))
        .where(Schedule.faculty_id.in_(faculty_ids))
        .group_by(Schedule.faculty_id)
    ).all()
    return {faculty_id: int(count) for faculty_id, count in rows}


def _busy_faculty(db: Session, faculty_ids: list[int], day: Weekday, time: str) -> set[int]:
    proposed = parse_time_range(time)
    busy: set[int] = set()
    if proposed is None or not faculty_ids:
        return busy
    rows = db.execute(
        select(Schedule).where(Schedule.faculty_id.in_(faculty_ids), Schedule.day == day)
    ).unique().scalars()
    for schedule in rows:
        if not section_is_valid(schedule.class_section):
            continue
        existing = parse_time_range(schedule.time)
        if existing is not None and ranges_overlap(existing, proposed):
            busy.add(schedule.faculty_id)
    return busy


def find_available_teachers(
    db: Session,
    *,
    day: Weekday,
    time: str,
    exclude_faculty_id: int | None = None,
    today: date | None = None,
) -> list[AvailableTeacher]:
    if parse_time_range(time) is None:
        raise InvalidInputError('Invalid time format. Expected format: "HH:MM-HH:MM"', details={"time": time})
    today = today or date.today()

    candidates = [item for item in active_faculty(db) if item.id != exclude_faculty_id]
    candidate_ids = [item.id for item in candidates]
    busy = _busy_faculty(db, candidate_ids, day, time)
    on_leave = faculty_on_leave(db, candidate_ids, today)
    loads = schedule_counts(db, candidate_ids)

    available = [
        AvailableTeacher(
            faculty_id=item.id,
            employee_id=item.employee_id,
            name=item.name,
            email=item.email,
            position=item.position,
            current_load=loads.get(item.id, 0),
        )
        for item in candidates
        if item.id not in busy and item.id not in on_leave
    ]
    logger.debug(
        "Availability for %s %s: %s candidates, %s busy, %s on leave, %s available",
        day.value,
        time,
        len(candidates),
        len(busy),
        len(on_leave),
        len(available),
    )
    return available


def leave_status(db: Session, faculty_ids: list[int], *, today: date | None = None) -> dict[int, dict]:
    today = today or date.today()
    active = faculty_on_leave(db, faculty_ids, today)
    status: dict[int, dict] = {}
    for faculty_id in faculty_ids:
        leave = active.get(faculty_id)
        status[faculty_id] = {
            "isOnLeave": leave is not None,
            "leave": (
                {
                    "leaveId": leave.id,
                    "leaveType": leave.leave_type.value,
                    "startDate": leave.start_date,
                    "endDate": leave.end_date,
                    "reason": leave.reason,
                }
                if leave is not None
                else None
            ),
        }
    return status


_WEEKDAY_ORDER = {day: index for index, day in enumerate(Weekday)}


def _slot_sort_key(schedule: Schedule) -> tuple[int, int, int]:
    parsed = parse_time_range(schedule.time)
    return (_WEEKDAY_ORDER.get(schedule.day, 7), parsed.start_minutes if parsed is not None else 0, schedule.id)


def suggest_substitutes_for_leave(db: Session, leave: Leave, *, today: date | None = None) -> list[dict]:
    """Run the availability search for every class the absent teacher holds."""
    if leave.status == LeaveStatus.rejected:
        raise InvalidInputError("Leave request was rejected; no substitutes are needed", details={"leaveId": leave.id})
    today = today or date.today()
    on_date = max(today, leave.start_date)

    rows = sorted(
        db.execute(select(Schedule).where(Schedule.faculty_id == leave.faculty_id)).unique().scalars(),
        key=_slot_sort_key,
    )
    suggestions: list[dict] = []
    for schedule in rows:
        if not section_is_valid(schedule.class_section) or parse_time_range(schedule.time) is None:
            continue
        candidates = find_available_teachers(
            db,
            day=schedule.day,
            time=schedule.time,
            exclude_faculty_id=leave.faculty_id,
            today=on_date,
        )
        candidates.sort(key=lambda item: (item.current_load, item.name))
        suggestions.append(
            {
                "scheduleId": schedule.id,
                "day": schedule.day.value,
                "time": schedule.time,
                "subjectName": schedule.subject.name if schedule.subject is not None else None,
                "sectionName": schedule.class_section.name,
                "candidates": [item.as_dict() for item in candidates],
            }
        )
    return suggestions
