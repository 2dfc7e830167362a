from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models.class_section import ClassSection
from app.models.faculty import Faculty
from app.models.schedule import Schedule
from app.models.schedule_slot_claim import ScheduleSlotClaim
from app.models.subject import Subject
from app.models.substitute_assignment import SubstituteAssignment

logger = logging.getLogger(__name__)


@dataclass
class OrphanReport:
    by_class_section: list[int] = field(default_factory=list)
    by_faculty: list[int] = field(default_factory=list)
    by_subject: list[int] = field(default_factory=list)

    @property
    def schedule_ids(self) -> list[int]:
        return sorted(set(self.by_class_section) | set(self.by_faculty) | set(self.by_subject))

    @property
    def is_clean(self) -> bool:
        return not self.schedule_ids


def find_orphaned_schedules(db: Session) -> OrphanReport:
    """Schedules pointing at a missing or soft-deleted section, faculty or subject."""
    valid_sections = set(db.execute(select(ClassSection.id).where(ClassSection.is_deleted.is_(False))).scalars())
    valid_faculty = set(db.execute(select(Faculty.id).where(Faculty.is_deleted.is_(False))).scalars())
    valid_subjects = set(db.execute(select(Subject.id).where(Subject.is_deleted.is_(False))).scalars())

    report = OrphanReport()
    rows = db.execute(
        select(Schedule.id, Schedule.class_section_id, Schedule.faculty_id, Schedule.subject_id).order_by(Schedule.id)
    ).all()
    for schedule_id, class_section_id, faculty_id, subject_id in rows:
        if class_section_id not in valid_sections:
            report.by_class_section.append(schedule_id)
        if faculty_id not in valid_faculty:
            report.by_faculty.append(schedule_id)
        if subject_id not in valid_subjects:
            report.by_subject.append(schedule_id)

    if not report.is_clean:
        logger.warning(
            "Found %s orphaned schedules (section: %s, faculty: %s, subject: %s)",
            len(report.schedule_ids),
            len(report.by_class_section),
            len(report.by_faculty),
            len(report.by_subject),
        )
    return report


def delete_schedules(db: Session, schedule_ids: list[int]) -> int:
    if not schedule_ids:
        return 0
    db.execute(delete(ScheduleSlotClaim).where(ScheduleSlotClaim.schedule_id.in_(schedule_ids)))
    db.execute(delete(SubstituteAssignment).where(SubstituteAssignment.schedule_id.in_(schedule_ids)))
    result = db.execute(delete(Schedule).where(Schedule.id.in_(schedule_ids)))
    logger.info("Deleted %s orphaned schedules", result.rowcount)
    return result.rowcount or 0
