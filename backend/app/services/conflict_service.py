from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInputError
from app.models.class_section import ClassSection
from app.models.faculty import Faculty
from app.models.schedule import Schedule, Weekday
from app.schemas.conflict import ConflictDetail, ConflictingSchedule, ConflictReport
from app.services.time_range import TimeRange, parse_time_range, ranges_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposedAssignment:
    faculty_id: int
    class_section_id: int
    day: Weekday
    time: str
    subject_id: int | None = None


def section_is_valid(section: ClassSection | None) -> bool:
    return section is not None and not section.is_deleted


def faculty_is_valid(faculty: Faculty | None) -> bool:
    return faculty is not None and not faculty.is_deleted


def schedule_is_orphaned(schedule: Schedule) -> bool:
    return not section_is_valid(schedule.class_section) or not faculty_is_valid(schedule.faculty)


class ConflictService:
    """Checks a proposed slot against a teacher's and a section's existing schedules."""

    def __init__(self, db: Session):
        self.db = db

    def validate(self, proposed: ProposedAssignment, *, exclude_schedule_id: int | None = None) -> ConflictReport:
        section = self.db.get(ClassSection, proposed.class_section_id)
        if not section_is_valid(section):
            raise InvalidInputError(
                "Invalid class section ID",
                details={"classSectionId": proposed.class_section_id},
            )
        proposed_range = parse_time_range(proposed.time)
        if proposed_range is None:
            raise InvalidInputError(
                'Invalid time format. Expected format: "HH:MM-HH:MM"',
                details={"time": proposed.time},
            )

        conflicts: list[ConflictDetail] = []

        for existing, existing_range in self._comparable_schedules(
            Schedule.faculty_id == proposed.faculty_id,
            day=proposed.day,
            exclude_schedule_id=exclude_schedule_id,
        ):
            if not ranges_overlap(existing_range, proposed_range):
                continue
            subject_name = self._subject_name(existing)
            conflicts.append(
                ConflictDetail(
                    type="teacher",
                    message=(
                        f"Teacher already has {subject_name} scheduled at {existing.day.value} {existing.time}. "
                        f"Cannot assign at overlapping time {proposed.time} on the same day."
                    ),
                    conflictingSchedule=self._describe(existing),
                )
            )

        for existing, existing_range in self._comparable_schedules(
            Schedule.class_section_id == proposed.class_section_id,
            day=proposed.day,
            exclude_schedule_id=exclude_schedule_id,
        ):
            # Same-teacher overlaps were already reported by the teacher pass.
            if existing.faculty_id == proposed.faculty_id:
                continue
            if not ranges_overlap(existing_range, proposed_range):
                continue
            teacher_name = self._teacher_name(existing)
            conflicts.append(
                ConflictDetail(
                    type="section",
                    message=(
                        f"Section {section.name} already has {teacher_name} teaching {self._subject_name(existing)} "
                        f"at {existing.day.value} {existing.time}. "
                        f"Cannot assign another teacher at overlapping time {proposed.time}."
                    ),
                    conflictingSchedule=self._describe(existing),
                )
            )

        return ConflictReport(conflicts=conflicts)

    def _comparable_schedules(
        self,
        owner_clause,
        *,
        day: Weekday,
        exclude_schedule_id: int | None,
    ) -> list[tuple[Schedule, TimeRange]]:
        query = select(Schedule).where(owner_clause, Schedule.day == day)
        if exclude_schedule_id is not None:
            query = query.where(Schedule.id != exclude_schedule_id)
        query = query.order_by(Schedule.id)

        comparable: list[tuple[Schedule, TimeRange]] = []
        for schedule in self.db.execute(query).unique().scalars():
            if schedule_is_orphaned(schedule):
                logger.warning(
                    "Skipping orphaned schedule %s: class section %s or faculty %s is missing or deleted",
                    schedule.id,
                    schedule.class_section_id,
                    schedule.faculty_id,
                )
                continue
            parsed = parse_time_range(schedule.time)
            if parsed is None:
                logger.warning("Skipping schedule %s with unparseable time %r", schedule.id, schedule.time)
                continue
            comparable.append((schedule, parsed))
        return comparable

    @staticmethod
    def _subject_name(schedule: Schedule) -> str:
        return schedule.subject.name if schedule.subject is not None else f"subject #{schedule.subject_id}"

    @staticmethod
    def _teacher_name(schedule: Schedule) -> str:
        if schedule.faculty is not None and schedule.faculty.name:
            return schedule.faculty.name
        return f"faculty #{schedule.faculty_id}"

    def _describe(self, schedule: Schedule) -> ConflictingSchedule:
        return ConflictingSchedule(
            id=schedule.id,
            subjectName=self._subject_name(schedule),
            sectionName=schedule.class_section.name if schedule.class_section is not None else "",
            teacherName=self._teacher_name(schedule),
            day=schedule.day.value,
            time=schedule.time,
        )
