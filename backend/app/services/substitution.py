from __future__ import annotations

from datetime import date, datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInputError, ResourceNotFoundError, StateTransitionError
from app.models.leave import Leave, LeaveStatus
from app.models.schedule import Schedule
from app.models.substitute_assignment import SubstituteAssignment, SubstituteAssignmentStatus
from app.models.user import User
from app.services.audit import log_activity
from app.services.availability import faculty_on_leave
from app.services.scheduling import get_faculty_or_404, reassign_faculty, require_active_faculty

logger = logging.getLogger(__name__)


def active_substitution(db: Session, schedule_id: int) -> SubstituteAssignment | None:
    return db.execute(
        select(SubstituteAssignment)
        .where(
            SubstituteAssignment.schedule_id == schedule_id,
            SubstituteAssignment.status == SubstituteAssignmentStatus.active,
        )
        .order_by(SubstituteAssignment.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def _resolve_leave(db: Session, leave_id: int | None, *, original_faculty_id: int) -> Leave | None:
    if leave_id is None:
        return None
    leave = db.get(Leave, leave_id)
    if leave is None:
        raise ResourceNotFoundError("Leave", leave_id)
    if leave.faculty_id != original_faculty_id:
        raise InvalidInputError(
            "Leave does not belong to the schedule's original teacher",
            details={"leaveId": leave_id, "facultyId": original_faculty_id},
        )
    if leave.status == LeaveStatus.rejected:
        raise InvalidInputError("Cannot substitute against a rejected leave", details={"leaveId": leave_id})
    return leave


def substitute_teacher(
    db: Session,
    schedule: Schedule,
    *,
    substitute_faculty_id: int,
    leave_id: int | None = None,
    active_to: date | None = None,
    notes: str | None = None,
    actor: User | None = None,
    today: date | None = None,
) -> SubstituteAssignment:
    """Hand a schedule to a substitute, remembering who it belongs to.

    Substituting an already substituted schedule keeps the originally recorded
    teacher, so a later restore still returns it to the right person.
    """
    today = today or date.today()
    require_active_faculty(db, substitute_faculty_id)
    if substitute_faculty_id == schedule.faculty_id:
        raise InvalidInputError(
            "Substitute teacher is already assigned to this schedule",
            details={"scheduleId": schedule.id, "facultyId": substitute_faculty_id},
        )

    existing = active_substitution(db, schedule.id)
    original_faculty_id = existing.original_faculty_id if existing is not None else schedule.faculty_id
    if substitute_faculty_id == original_faculty_id:
        raise StateTransitionError(
            "Substitute is the schedule's original teacher; restore the original teacher instead",
            details={"scheduleId": schedule.id, "originalFacultyId": original_faculty_id},
        )
    leave = _resolve_leave(db, leave_id, original_faculty_id=original_faculty_id)
    if faculty_on_leave(db, [substitute_faculty_id], today):
        raise InvalidInputError(
            "Substitute teacher is on approved leave",
            details={"facultyId": substitute_faculty_id, "date": today.isoformat()},
        )

    schedule_id = schedule.id
    previous_faculty_id = schedule.faculty_id
    reassign_faculty(db, schedule, substitute_faculty_id)

    if existing is not None:
        assignment = existing
        assignment.substitute_faculty_id = substitute_faculty_id
        if leave is not None:
            assignment.leave_id = leave.id
        if active_to is not None:
            assignment.active_to = active_to
        if notes is not None:
            assignment.notes = notes
    else:
        assignment = SubstituteAssignment(
            schedule_id=schedule_id,
            original_faculty_id=original_faculty_id,
            substitute_faculty_id=substitute_faculty_id,
            leave_id=leave.id if leave is not None else None,
            status=SubstituteAssignmentStatus.active,
            active_from=today,
            active_to=active_to if active_to is not None else (leave.end_date if leave is not None else None),
            assigned_by_id=actor.id if actor is not None else None,
            notes=notes,
        )
        db.add(assignment)

    log_activity(
        db,
        user=actor,
        action="schedule.substitute",
        entity_type="schedule",
        entity_id=schedule_id,
        details={
            "previous_faculty_id": previous_faculty_id,
            "original_faculty_id": original_faculty_id,
            "substitute_faculty_id": substitute_faculty_id,
            "leave_id": assignment.leave_id,
        },
    )
    db.flush()
    logger.info(
        "Schedule %s substituted: faculty %s -> %s (original %s)",
        schedule_id,
        previous_faculty_id,
        substitute_faculty_id,
        original_faculty_id,
    )
    return assignment


def restore_original_teacher(
    db: Session,
    schedule: Schedule,
    *,
    original_faculty_id: int,
    force: bool = False,
    actor: User | None = None,
    today: date | None = None,
) -> SubstituteAssignment | None:
    """Return a substituted schedule to its original teacher.

    The original is re-validated against whatever they took on while away, and
    a teacher still on approved leave is refused unless ``force`` is set.
    """
    today = today or date.today()
    original = get_faculty_or_404(db, original_faculty_id)
    if not original.is_active:
        raise InvalidInputError(
            f"Faculty {original_faculty_id} is not active",
            details={"facultyId": original_faculty_id, "employmentStatus": original.employment_status.value},
        )

    assignment = active_substitution(db, schedule.id)
    if assignment is not None and assignment.original_faculty_id != original_faculty_id:
        raise StateTransitionError(
            "Faculty is not the recorded original teacher of this schedule",
            details={
                "scheduleId": schedule.id,
                "recordedOriginalFacultyId": assignment.original_faculty_id,
                "requestedFacultyId": original_faculty_id,
            },
        )
    if not force:
        still_away = faculty_on_leave(db, [original_faculty_id], today).get(original_faculty_id)
        if still_away is not None:
            raise StateTransitionError(
                "Original teacher is still on approved leave",
                details={
                    "facultyId": original_faculty_id,
                    "leaveId": still_away.id,
                    "endDate": still_away.end_date.isoformat(),
                },
            )

    schedule_id = schedule.id
    previous_faculty_id = schedule.faculty_id
    if previous_faculty_id != original_faculty_id:
        reassign_faculty(db, schedule, original_faculty_id)
    elif assignment is None:
        logger.info("Schedule %s already belongs to faculty %s; nothing to restore", schedule_id, original_faculty_id)

    if assignment is not None:
        assignment.status = SubstituteAssignmentStatus.restored
        assignment.restored_at = datetime.now(timezone.utc)
        assignment.restored_by_id = actor.id if actor is not None else None

    log_activity(
        db,
        user=actor,
        action="schedule.restore_original",
        entity_type="schedule",
        entity_id=schedule_id,
        details={
            "previous_faculty_id": previous_faculty_id,
            "original_faculty_id": original_faculty_id,
            "substitute_assignment_id": assignment.id if assignment is not None else None,
            "forced": force,
        },
    )
    db.flush()
    return assignment
