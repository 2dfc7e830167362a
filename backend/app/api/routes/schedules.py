from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_sis_client, require_roles
from app.core.exceptions import InvalidInputError
from app.models.schedule import Schedule, Weekday
from app.models.user import User, UserRole
from app.schemas.availability import AvailableTeachersResponse, LeaveStatusResponse
from app.schemas.conflict import ConflictCheckResponse
from app.schemas.schedule import (
    ConflictCheckRequest,
    ScheduleAssignRequest,
    ScheduleMutationResponse,
    ScheduleOut,
    ScheduleUpdateRequest,
    WEEKDAY_BY_INDEX,
    parse_weekday,
)
from app.schemas.substitute import (
    RestoreOriginalTeacherRequest,
    SubstituteAssignmentOut,
    SubstituteRequest,
    SubstituteResponse,
)
from app.services.audit import log_activity
from app.services.availability import find_available_teachers, leave_status
from app.services.conflict_service import ConflictService, ProposedAssignment
from app.services.scheduling import (
    assign_schedule,
    delete_schedule,
    get_faculty_or_404,
    get_schedule_or_404,
    update_schedule,
)
from app.services.sis_client import SisClient
from app.services.substitution import restore_original_teacher, substitute_teacher
from app.services.sync_outbox import SyncResult, deliver_after_commit, enqueue_assignment_sync
from app.services.time_range import parse_time_range

logger = logging.getLogger(__name__)

router = APIRouter()

OPERATOR_ROLES = (UserRole.admin, UserRole.scheduler)
READ_ROLES = (UserRole.admin, UserRole.scheduler, UserRole.faculty)


def schedule_out(schedule: Schedule) -> ScheduleOut:
    faculty = schedule.faculty
    return ScheduleOut(
        id=schedule.id,
        facultyId=schedule.faculty_id,
        subjectId=schedule.subject_id,
        classSectionId=schedule.class_section_id,
        day=schedule.day,
        time=schedule.time,
        durationMinutes=schedule.duration_minutes,
        sisScheduleId=schedule.sis_schedule_id,
        teacherName=faculty.name if faculty is not None else None,
        employeeId=faculty.employee_id if faculty is not None else None,
        subjectName=schedule.subject.name if schedule.subject is not None else None,
        sectionName=schedule.class_section.name if schedule.class_section is not None else None,
    )


def _sync_out(result: SyncResult | None) -> dict | None:
    return result.as_dict() if result is not None else None


def _slot_order(schedule: Schedule) -> tuple[int, int, int]:
    parsed = parse_time_range(schedule.time)
    return (WEEKDAY_BY_INDEX.index(schedule.day), parsed.start_minutes if parsed is not None else 0, schedule.id)


def _query_weekday(value: str) -> Weekday:
    try:
        return parse_weekday(value)
    except ValueError as exc:
        raise InvalidInputError(str(exc), details={"day": value}) from exc


@router.post("/schedules/check-conflicts", response_model=ConflictCheckResponse)
def check_conflicts(
    payload: ConflictCheckRequest,
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
) -> ConflictCheckResponse:
    proposed = ProposedAssignment(
        faculty_id=payload.facultyId,
        subject_id=payload.subjectId,
        class_section_id=payload.classSectionId,
        day=payload.day,
        time=payload.time,
    )
    report = ConflictService(db).validate(proposed, exclude_schedule_id=payload.scheduleId)
    return ConflictCheckResponse(hasConflicts=report.has_conflicts, conflicts=report.conflicts)


@router.get("/schedules", response_model=list[ScheduleOut])
def list_schedules(
    faculty_id: int | None = Query(default=None, alias="facultyId"),
    day: str | None = Query(default=None),
    current_user: User = Depends(require_roles(*READ_ROLES)),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    query = select(Schedule)
    if faculty_id is not None:
        query = query.where(Schedule.faculty_id == faculty_id)
    if day:
        query = query.where(Schedule.day == _query_weekday(day))
    rows = sorted(db.execute(query).unique().scalars(), key=_slot_order)
    return [schedule_out(item) for item in rows]


@router.get("/schedules/available-teachers", response_model=AvailableTeachersResponse)
def available_teachers(
    day: str = Query(min_length=3),
    time: str = Query(min_length=3),
    exclude_faculty_id: int | None = Query(default=None, alias="excludeFacultyId"),
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
) -> AvailableTeachersResponse:
    teachers = find_available_teachers(
        db,
        day=_query_weekday(day),
        time=time,
        exclude_faculty_id=exclude_faculty_id,
    )
    teachers.sort(key=lambda item: (item.current_load, item.name))
    return AvailableTeachersResponse(
        availableTeachers=[item.as_dict() for item in teachers],
        total=len(teachers),
    )


@router.get("/schedules/faculty-leave-status", response_model=LeaveStatusResponse)
def faculty_leave_status(
    faculty_ids: str = Query(default="", alias="facultyIds"),
    current_user: User = Depends(require_roles(*READ_ROLES)),
    db: Session = Depends(get_db),
) -> LeaveStatusResponse:
    ids: list[int] = []
    for item in faculty_ids.split(","):
        item = item.strip()
        if not item:
            continue
        if not item.isdigit():
            raise InvalidInputError("facultyIds must be a comma-separated list of integers", details={"facultyIds": faculty_ids})
        ids.append(int(item))
    return LeaveStatusResponse(leaveStatus=leave_status(db, sorted(set(ids))))


@router.post(
    "/schedules/restore-original-teacher",
    response_model=ScheduleMutationResponse,
)
def restore_original(
    payload: RestoreOriginalTeacherRequest,
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> ScheduleMutationResponse:
    schedule = get_schedule_or_404(db, payload.hrmsScheduleId)
    restore_original_teacher(
        db,
        schedule,
        original_faculty_id=payload.originalFacultyId,
        force=payload.force,
        actor=current_user,
    )
    staged = enqueue_assignment_sync(
        db,
        sis_schedule_id=payload.sisScheduleId or schedule.sis_schedule_id,
        faculty=get_faculty_or_404(db, payload.originalFacultyId),
        entity_type="schedule",
        entity_id=str(schedule.id),
    )
    db.commit()
    db.refresh(schedule)
    out = schedule_out(schedule)
    sync = deliver_after_commit(db, staged, client=sis_client)
    return ScheduleMutationResponse(message="Original teacher restored successfully", schedule=out, sync=_sync_out(sync))


@router.post(
    "/schedules",
    response_model=ScheduleMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule(
    payload: ScheduleAssignRequest,
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> ScheduleMutationResponse:
    schedule = assign_schedule(
        db,
        faculty_id=payload.facultyId,
        subject_id=payload.subjectId,
        class_section_id=payload.classSectionId,
        day=payload.day,
        time=payload.time,
        duration_minutes=payload.durationMinutes,
        sis_schedule_id=payload.sisScheduleId,
    )
    staged = enqueue_assignment_sync(
        db,
        sis_schedule_id=payload.sisScheduleId,
        faculty=get_faculty_or_404(db, payload.facultyId),
        entity_type="schedule",
        entity_id=str(schedule.id),
    )
    log_activity(
        db,
        user=current_user,
        action="schedule.assign",
        entity_type="schedule",
        entity_id=schedule.id,
        details={
            "faculty_id": payload.facultyId,
            "class_section_id": payload.classSectionId,
            "day": payload.day.value,
            "time": payload.time,
        },
    )
    db.commit()
    db.refresh(schedule)
    out = schedule_out(schedule)
    sync = deliver_after_commit(db, staged, client=sis_client)
    return ScheduleMutationResponse(message="Schedule assigned successfully", schedule=out, sync=_sync_out(sync))


@router.get("/schedules/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: int,
    current_user: User = Depends(require_roles(*READ_ROLES)),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return schedule_out(get_schedule_or_404(db, schedule_id))


@router.put("/schedules/{schedule_id}", response_model=ScheduleMutationResponse)
def edit_schedule(
    schedule_id: int,
    payload: ScheduleUpdateRequest,
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> ScheduleMutationResponse:
    schedule = get_schedule_or_404(db, schedule_id)
    previous_faculty_id = schedule.faculty_id
    update_schedule(
        db,
        schedule,
        faculty_id=payload.facultyId,
        subject_id=payload.subjectId,
        class_section_id=payload.classSectionId,
        day=payload.day,
        time=payload.time,
        duration_minutes=payload.durationMinutes,
    )
    staged = None
    if payload.facultyId != previous_faculty_id:
        staged = enqueue_assignment_sync(
            db,
            sis_schedule_id=schedule.sis_schedule_id,
            faculty=get_faculty_or_404(db, payload.facultyId),
            entity_type="schedule",
            entity_id=str(schedule_id),
        )
    log_activity(
        db,
        user=current_user,
        action="schedule.update",
        entity_type="schedule",
        entity_id=schedule_id,
        details={"previous_faculty_id": previous_faculty_id, "faculty_id": payload.facultyId, "time": payload.time},
    )
    db.commit()
    db.refresh(schedule)
    out = schedule_out(schedule)
    sync = deliver_after_commit(db, staged, client=sis_client)
    return ScheduleMutationResponse(message="Schedule updated successfully", schedule=out, sync=_sync_out(sync))


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_schedule(
    schedule_id: int,
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
) -> None:
    schedule = get_schedule_or_404(db, schedule_id)
    log_activity(
        db,
        user=current_user,
        action="schedule.delete",
        entity_type="schedule",
        entity_id=schedule_id,
        details={"faculty_id": schedule.faculty_id, "day": schedule.day.value, "time": schedule.time},
    )
    delete_schedule(db, schedule)
    db.commit()


@router.post("/schedules/{schedule_id}/substitute", response_model=SubstituteResponse)
def assign_substitute(
    schedule_id: int,
    payload: SubstituteRequest,
    current_user: User = Depends(require_roles(*OPERATOR_ROLES)),
    db: Session = Depends(get_db),
    sis_client: SisClient = Depends(get_sis_client),
) -> SubstituteResponse:
    schedule = get_schedule_or_404(db, schedule_id)
    assignment = substitute_teacher(
        db,
        schedule,
        substitute_faculty_id=payload.substituteFacultyId,
        leave_id=payload.leaveId,
        active_to=payload.activeTo,
        notes=payload.notes,
        actor=current_user,
    )
    staged = enqueue_assignment_sync(
        db,
        sis_schedule_id=payload.sisScheduleId or schedule.sis_schedule_id,
        faculty=get_faculty_or_404(db, payload.substituteFacultyId),
        entity_type="substitute_assignment",
        entity_id=str(assignment.id),
    )
    db.commit()
    db.refresh(schedule)
    db.refresh(assignment)
    out = schedule_out(schedule)
    substitution = SubstituteAssignmentOut.model_validate(assignment)
    sync = deliver_after_commit(db, staged, client=sis_client)
    return SubstituteResponse(
        message="Substitute teacher assigned successfully",
        schedule=out,
        substitution=substitution,
        sync=_sync_out(sync),
    )
