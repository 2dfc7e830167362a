from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.faculty import EmployeeType, Faculty
from app.models.schedule import Schedule, Weekday
from app.services.availability import faculty_on_leave
from app.services.conflict_service import section_is_valid
from app.services.time_range import parse_time_range, ranges_overlap


@dataclass(frozen=True)
class WorkloadLimits:
    max_sections: int
    max_hours_per_week: int

    @property
    def max_minutes_per_week(self) -> int:
        return self.max_hours_per_week * 60


def workload_limits(employee_type: EmployeeType | None) -> WorkloadLimits:
    if employee_type == EmployeeType.part_time:
        return WorkloadLimits(max_sections=5, max_hours_per_week=20)
    if employee_type == EmployeeType.probationary:
        return WorkloadLimits(max_sections=8, max_hours_per_week=35)
    return WorkloadLimits(max_sections=10, max_hours_per_week=40)


def teaching_schedules(db: Session, faculty_id: int, *, day: Weekday | None = None) -> list[Schedule]:
    """The teacher's schedules, leaving out rows whose section is gone."""
    query = select(Schedule).where(Schedule.faculty_id == faculty_id)
    if day is not None:
        query = query.where(Schedule.day == day)
    rows = db.execute(query.order_by(Schedule.id)).unique().scalars()
    return [schedule for schedule in rows if section_is_valid(schedule.class_section)]


def current_workload(db: Session, faculty_id: int) -> tuple[int, int]:
    """Return ``(sections, minutes_per_week)`` across the teacher's live schedules."""
    schedules = teaching_schedules(db, faculty_id)
    return len(schedules), sum(schedule.duration_minutes or 0 for schedule in schedules)


def _hours(minutes: int) -> float:
    return round(minutes / 60, 2)


def _load_status(percentage: int) -> str:
    if percentage >= 100:
        return "Full Load"
    if percentage >= 80:
        return "Near Capacity"
    if percentage >= 50:
        return "Moderate Load"
    return "Light Load"


_WEEKDAY_ORDER = {day: index for index, day in enumerate(Weekday)}


def _schedule_sort_key(schedule: Schedule) -> tuple[int, int, int]:
    parsed = parse_time_range(schedule.time)
    return (_WEEKDAY_ORDER[schedule.day], parsed.start_minutes if parsed is not None else 0, schedule.id)


def workload_summary(db: Session, faculty: Faculty) -> dict:
    """Current teaching load, per-day breakdown and remaining capacity."""
    limits = workload_limits(faculty.employee_type)
    schedules = sorted(teaching_schedules(db, faculty.id), key=_schedule_sort_key)
    total_sections = len(schedules)
    total_minutes = sum(schedule.duration_minutes or 0 for schedule in schedules)
    percentage = round(total_minutes / limits.max_minutes_per_week * 100) if limits.max_minutes_per_week else 0
    available_minutes = max(0, limits.max_minutes_per_week - total_minutes)
    can_take_more = total_sections < limits.max_sections and total_minutes < limits.max_minutes_per_week

    schedule_rows = []
    per_day: dict[str, dict] = {}
    for schedule in schedules:
        schedule_rows.append(
            {
                "scheduleId": schedule.id,
                "day": schedule.day.value,
                "time": schedule.time,
                "durationMinutes": schedule.duration_minutes,
                "subject": {
                    "id": schedule.subject_id,
                    "name": schedule.subject.name if schedule.subject is not None else None,
                },
                "section": {"id": schedule.class_section_id, "name": schedule.class_section.name},
            }
        )
        day_totals = per_day.setdefault(schedule.day.value, {"day": schedule.day.value, "minutes": 0, "classes": 0})
        day_totals["minutes"] += schedule.duration_minutes or 0
        day_totals["classes"] += 1

    warnings = []
    if percentage >= 90:
        warnings.append("Faculty is near maximum capacity")
    if total_sections >= limits.max_sections:
        warnings.append("Maximum sections reached")
    if total_minutes >= limits.max_minutes_per_week:
        warnings.append("Maximum hours reached")

    return {
        "employeeId": faculty.employee_id,
        "facultyId": faculty.id,
        "name": faculty.name,
        "email": faculty.email,
        "position": faculty.position,
        "employmentType": faculty.employee_type.value,
        "employmentStatus": faculty.employment_status.value,
        "workload": {
            "totalSections": total_sections,
            "totalHoursPerWeek": _hours(total_minutes),
            "maxSections": limits.max_sections,
            "maxHoursPerWeek": limits.max_hours_per_week,
            "availableHours": _hours(available_minutes),
            "workloadPercentage": percentage,
            "canTakeMoreSections": can_take_more,
            "status": _load_status(percentage),
        },
        "hoursPerDay": [
            {"day": item["day"], "totalHours": _hours(item["minutes"]), "numberOfClasses": item["classes"]}
            for item in per_day.values()
        ],
        "schedules": schedule_rows,
        "recommendations": {
            "canAssignMore": can_take_more,
            "suggestedMaxAdditionalHours": _hours(available_minutes),
            "suggestedMaxAdditionalSections": max(0, limits.max_sections - total_sections),
            "warnings": warnings,
        },
    }


def validate_additional_workload(
    db: Session,
    faculty: Faculty,
    *,
    additional_sections: int = 0,
    additional_minutes: int = 0,
    day: Weekday | None = None,
    time: str | None = None,
    today: date | None = None,
) -> dict:
    today = today or date.today()
    active_leave = faculty_on_leave(db, [faculty.id], today).get(faculty.id)
    if active_leave is not None:
        return {
            "canAssign": False,
            "reason": "Faculty is currently on leave",
            "currentLeave": {
                "type": active_leave.leave_type.value,
                "startDate": active_leave.start_date.isoformat(),
                "endDate": active_leave.end_date.isoformat(),
            },
        }
    if not faculty.is_active:
        return {"canAssign": False, "reason": f"Faculty status: {faculty.employment_status.value}"}

    limits = workload_limits(faculty.employee_type)
    current_sections, current_minutes = current_workload(db, faculty.id)

    proposed_range = parse_time_range(time) if time else None
    slot_minutes = proposed_range.duration_minutes if proposed_range is not None else 0
    proposed_sections = current_sections + additional_sections
    proposed_minutes = current_minutes + additional_minutes + slot_minutes

    exceeds_hours = proposed_minutes > limits.max_minutes_per_week
    exceeds_sections = proposed_sections > limits.max_sections

    conflicts: list[dict] = []
    if day is not None and proposed_range is not None:
        for schedule in teaching_schedules(db, faculty.id, day=day):
            existing = parse_time_range(schedule.time)
            if existing is None or not ranges_overlap(existing, proposed_range):
                continue
            conflicts.append(
                {
                    "day": schedule.day.value,
                    "time": schedule.time,
                    "durationMinutes": schedule.duration_minutes,
                    "subject": schedule.subject.name if schedule.subject is not None else None,
                    "section": schedule.class_section.name if schedule.class_section is not None else None,
                }
            )
    schedule_conflict = bool(conflicts)

    reasons = []
    if exceeds_hours:
        reasons.append(
            f"Exceeds maximum hours ({_hours(proposed_minutes)}/{limits.max_hours_per_week} hours)"
        )
    if exceeds_sections:
        reasons.append(f"Exceeds maximum sections ({proposed_sections}/{limits.max_sections} sections)")
    if schedule_conflict:
        reasons.append("Schedule conflict detected")

    return {
        "canAssign": not reasons,
        "reason": "; ".join(reasons) if reasons else "Faculty can take additional workload",
        "validation": {
            "employeeId": faculty.employee_id,
            "facultyId": faculty.id,
            "name": faculty.name,
            "employmentType": faculty.employee_type.value,
        },
        "currentWorkload": {"sections": current_sections, "hoursPerWeek": _hours(current_minutes)},
        "proposedWorkload": {"sections": proposed_sections, "hoursPerWeek": _hours(proposed_minutes)},
        "limits": {"maxSections": limits.max_sections, "maxHoursPerWeek": limits.max_hours_per_week},
        "availability": {
            "remainingSections": max(0, limits.max_sections - proposed_sections),
            "remainingHours": max(0, _hours(limits.max_minutes_per_week - proposed_minutes)),
        },
        "checks": {
            "exceedsHours": exceeds_hours,
            "exceedsSections": exceeds_sections,
            "scheduleConflict": schedule_conflict,
        },
        "conflicts": conflicts,
    }
