"""Signed endpoints called by the enrollment system (SIS) and the LMS."""

from __future__ import annotations

from datetime import date
import logging

from fastapi import APIRouter, Depends
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import SignedCaller, get_db, require_signed_request
from app.core.exceptions import InvalidInputError, ResourceNotFoundError
from app.models.faculty import Faculty
from app.models.leave import Leave, LeaveStatus
from app.models.schedule import Schedule
from app.schemas.schedule import parse_weekday
from app.schemas.sync import FacultyAvailabilityOut, FetchAllRequest, WorkloadValidateRequest, XrLeaveOut, XrScheduleOut
from app.services.availability import faculty_on_leave
from app.services.conflict_service import schedule_is_orphaned
from app.services.workload import validate_additional_workload, workload_summary

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_body(model, caller: SignedCaller):
    try:
        return model.model_validate_json(caller.raw_body or "{}")
    except ValidationError as exc:
        logger.warning("Invalid %s payload from %s", model.__name__, caller.name)
        raise InvalidInputError("Invalid request data", details={"errors": exc.errors(include_url=False)}) from exc


def _faculty_by_employee_id(db: Session, employee_id: str) -> Faculty:
    faculty = db.execute(
        select(Faculty).where(Faculty.employee_id == employee_id, Faculty.is_deleted.is_(False))
    ).unique().scalar_one_or_none()
    if faculty is None:
        raise ResourceNotFoundError("Faculty", employee_id)
    return faculty


def _leave_out(leave: Leave) -> XrLeaveOut:
    return XrLeaveOut(
        leaveId=leave.id,
        type=leave.leave_type.value,
        startDate=leave.start_date,
        endDate=leave.end_date,
        reason=leave.reason,
        status=leave.status.value,
    )


@router.get("/xr/faculty-availability/{employee_id}", response_model=FacultyAvailabilityOut)
def faculty_availability(
    employee_id: str,
    caller: SignedCaller = Depends(require_signed_request),
    db: Session = Depends(get_db),
) -> FacultyAvailabilityOut:
    faculty = _faculty_by_employee_id(db, employee_id)
    today = date.today()
    current = faculty_on_leave(db, [faculty.id], today).get(faculty.id)
    upcoming = list(
        db.execute(
            select(Leave)
            .where(
                Leave.faculty_id == faculty.id,
                Leave.status == LeaveStatus.approved,
                Leave.start_date > today,
            )
            .order_by(Leave.start_date)
            .limit(10)
        ).scalars()
    )

    if not faculty.is_active:
        availability = {"status": "inactive", "reason": f"Faculty status: {faculty.employment_status.value}"}
    elif current is not None:
        availability = {"status": "on_leave", "reason": f"On {current.leave_type.value} leave until {current.end_date.isoformat()}"}
    else:
        availability = {"status": "available", "reason": None}

    return FacultyAvailabilityOut(
        employeeId=faculty.employee_id,
        facultyId=faculty.id,
        name=faculty.name,
        email=faculty.email,
        isAvailable=availability["status"] == "available",
        availability=availability,
        employmentStatus=faculty.employment_status.value,
        employeeType=faculty.employee_type.value,
        currentLeave=_leave_out(current) if current is not None else None,
        upcomingLeaves=[_leave_out(item) for item in upcoming],
    )


@router.get("/xr/faculty-workload/{employee_id}")
def faculty_workload(
    employee_id: str,
    caller: SignedCaller = Depends(require_signed_request),
    db: Session = Depends(get_db),
) -> dict:
    faculty = _faculty_by_employee_id(db, employee_id)
    summary = workload_summary(db, faculty)
    logger.info("Served workload of %s to %s", employee_id, caller.name)
    return summary


@router.post("/xr/faculty-workload/validate")
def validate_workload(
    caller: SignedCaller = Depends(require_signed_request),
    db: Session = Depends(get_db),
) -> dict:
    payload = _parse_body(WorkloadValidateRequest, caller)
    faculty = _faculty_by_employee_id(db, payload.employeeId)
    day = None
    if payload.day:
        try:
            day = parse_weekday(payload.day)
        except ValueError as exc:
            raise InvalidInputError(str(exc), details={"day": payload.day}) from exc
    return validate_additional_workload(
        db,
        faculty,
        additional_sections=payload.additionalSections,
        additional_minutes=payload.additionalMinutes,
        day=day,
        time=payload.time,
    )


@router.post("/xr/schedules")
def fetch_all_schedules(
    caller: SignedCaller = Depends(require_signed_request),
    db: Session = Depends(get_db),
) -> dict:
    payload = _parse_body(FetchAllRequest, caller)
    if payload.data != "fetch-all-schedules":
        raise InvalidInputError("Invalid request data", details={"data": payload.data})

    rows = db.execute(select(Schedule).order_by(Schedule.id)).unique().scalars()
    data = []
    for schedule in rows:
        if schedule_is_orphaned(schedule):
            continue
        faculty = schedule.faculty
        data.append(
            XrScheduleOut(
                id=schedule.id,
                sisScheduleId=schedule.sis_schedule_id,
                day=schedule.day.value,
                time=schedule.time,
                durationMinutes=schedule.duration_minutes,
                subjectCode=schedule.subject.code if schedule.subject is not None else None,
                subjectName=schedule.subject.name if schedule.subject is not None else None,
                sectionName=schedule.class_section.name,
                employeeId=faculty.employee_id if faculty is not None else None,
                teacherName=faculty.name if faculty is not None else None,
            ).model_dump()
        )
    logger.info("Served %s schedules to %s", len(data), caller.name)
    return {"data": data, "total": len(data)}
