"""Match rows fetched from SIS to local subjects, sections and schedules."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.class_section import ClassSection
from app.models.schedule import Schedule
from app.models.subject import Subject
from app.models.sync_outbox import SyncOutboxMessage
from app.schemas.schedule import parse_weekday
from app.services.conflict_service import schedule_is_orphaned
from app.services.sync_outbox import SyncResult, enqueue_assignment_sync
from app.services.time_range import normalize_time_range, parse_time_range

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class SisScheduleMatcher:
    def __init__(self, db: Session):
        self.db = db
        self._subjects_by_code: dict[str, Subject] = {}
        self._subjects_by_name: dict[str, Subject] = {}
        for subject in db.execute(select(Subject).where(Subject.is_deleted.is_(False))).scalars():
            self._subjects_by_code[subject.code.lower()] = subject
            self._subjects_by_name.setdefault(subject.name.lower(), subject)
        self._sections_by_name: dict[str, ClassSection] = {}
        for section in db.execute(select(ClassSection).where(ClassSection.is_deleted.is_(False))).scalars():
            self._sections_by_name.setdefault(section.name.lower(), section)

    def subject_for(self, data: dict) -> Subject | None:
        code = str(data.get("code") or "").strip().lower()
        name = str(data.get("name") or "").strip().lower()
        return self._subjects_by_code.get(code) or self._subjects_by_name.get(name)

    def section_for(self, data: dict) -> ClassSection | None:
        name = str(data.get("name") or "").strip().lower()
        return self._sections_by_name.get(name)

    def map_schedule(self, row: dict) -> dict:
        slot = row.get("schedule") or {}
        subject_data = row.get("subject") or {}
        section_data = row.get("section") or {}
        teacher = row.get("teacher") or {}

        subject = self.subject_for(subject_data)
        section = self.section_for(section_data)

        raw_time = f"{slot.get('startTime', '')}-{slot.get('endTime', '')}" if slot.get("startTime") else ""
        time = normalize_time_range(raw_time) or raw_time
        try:
            day = parse_weekday(slot.get("day") or "")
        except ValueError:
            day = None

        local = None
        if subject is not None and section is not None and day is not None and parse_time_range(time) is not None:
            local = self.db.execute(
                select(Schedule)
                .where(
                    Schedule.subject_id == subject.id,
                    Schedule.class_section_id == section.id,
                    Schedule.day == day,
                    Schedule.time == time,
                )
                .limit(1)
            ).unique().scalar_one_or_none()

        parsed = parse_time_range(time)
        teacher_id = teacher.get("teacherId")
        return {
            "sisScheduleId": _as_int(row.get("scheduleId") or row.get("id")),
            "day": day.value if day is not None else slot.get("day"),
            "time": time,
            "durationMinutes": parsed.duration_minutes if parsed is not None else None,
            "subjectName": subject.name if subject is not None else (subject_data.get("name") or "Unknown"),
            "subjectId": subject.id if subject is not None else None,
            "sectionName": section.name if section is not None else (section_data.get("name") or "Unknown"),
            "classSectionId": section.id if section is not None else None,
            "assignedInSis": teacher.get("assigned") is True,
            "sisTeacherId": str(teacher_id) if teacher_id is not None else None,
            "hrmsScheduleId": local.id if local is not None else None,
            "hrmsFacultyId": local.faculty_id if local is not None else None,
            "hrmsTeacherName": local.faculty.name if local is not None and local.faculty is not None else None,
        }


def map_sis_schedules(db: Session, rows: list[dict]) -> list[dict]:
    matcher = SisScheduleMatcher(db)
    mapped = [matcher.map_schedule(row) for row in rows if isinstance(row, dict)]
    unmatched = sum(1 for item in mapped if item["subjectId"] is None or item["classSectionId"] is None)
    if unmatched:
        logger.info("%s of %s SIS schedules have no local subject or section match", unmatched, len(mapped))
    return mapped


def merge_sis_sections(db: Session, rows: list[dict]) -> list[dict]:
    by_name: dict[str, dict] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        name = str((row.get("section") or {}).get("name") or row.get("name") or "").strip().lower()
        if name:
            by_name.setdefault(name, row)

    merged = []
    for section in db.execute(
        select(ClassSection).where(ClassSection.is_deleted.is_(False)).order_by(ClassSection.name)
    ).scalars():
        match = by_name.get(section.name.lower())
        adviser = match.get("adviser") if match is not None else None
        merged.append(
            {
                "classSectionId": section.id,
                "name": section.name,
                "gradeLevel": section.grade_level,
                "sisSectionId": _as_int(match.get("sectionId")) if match is not None else None,
                "sisAdviser": adviser if isinstance(adviser, str) else None,
                "matched": match is not None,
            }
        )
    return merged


@dataclass
class ExistingSyncPlan:
    queued: list[SyncOutboxMessage] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)


def queue_existing_assignments(db: Session, rows: list[dict]) -> ExistingSyncPlan:
    """Stage one assignment push per SIS schedule that matches a local schedule with a teacher.

    The caller commits and delivers the queued rows.
    """
    plan = ExistingSyncPlan()
    for item in map_sis_schedules(db, rows):
        sis_schedule_id = item["sisScheduleId"]
        if item["hrmsScheduleId"] is None:
            plan.skipped.append({"sisScheduleId": sis_schedule_id, "reason": "No matching local schedule"})
            continue
        if sis_schedule_id is None:
            plan.skipped.append({"hrmsScheduleId": item["hrmsScheduleId"], "reason": "SIS row has no schedule ID"})
            continue
        schedule = db.get(Schedule, item["hrmsScheduleId"])
        if schedule is None or schedule_is_orphaned(schedule):
            plan.skipped.append(
                {"sisScheduleId": sis_schedule_id, "hrmsScheduleId": item["hrmsScheduleId"], "reason": "Orphaned schedule"}
            )
            continue

        staged = enqueue_assignment_sync(
            db,
            sis_schedule_id=sis_schedule_id,
            faculty=schedule.faculty,
            entity_type="schedule",
            entity_id=str(schedule.id),
        )
        if isinstance(staged, SyncResult):
            plan.skipped.append(
                {"sisScheduleId": sis_schedule_id, "hrmsScheduleId": schedule.id, "reason": staged.message}
            )
        elif staged is not None:
            plan.queued.append(staged)

    logger.info("Queued %s existing assignments for SIS; skipped %s", len(plan.queued), len(plan.skipped))
    return plan
