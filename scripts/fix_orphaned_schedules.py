"""Report, and optionally delete, schedules that point at missing or soft-deleted records.

Orphans are skipped by the conflict validator at request time; this is the
offline cleanup for them.

Run:
  PYTHONPATH=backend python scripts/fix_orphaned_schedules.py            # dry run
  PYTHONPATH=backend python scripts/fix_orphaned_schedules.py --delete
"""

from __future__ import annotations

import argparse
import logging

from sqlalchemy import select

from app.db.session import SessionLocal
from app.models.schedule import Schedule
from app.services.integrity import delete_schedules, find_orphaned_schedules

logger = logging.getLogger("fix_orphaned_schedules")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--delete", action="store_true", help="delete the orphaned schedules")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    db = SessionLocal()
    try:
        report = find_orphaned_schedules(db)
        if report.is_clean:
            print("No orphaned schedules found.")
            return 0

        print(f"Orphaned by class section: {len(report.by_class_section)}")
        print(f"Orphaned by faculty: {len(report.by_faculty)}")
        print(f"Orphaned by subject: {len(report.by_subject)}")
        rows = db.execute(
            select(Schedule.id, Schedule.faculty_id, Schedule.class_section_id, Schedule.day, Schedule.time).where(
                Schedule.id.in_(report.schedule_ids)
            )
        ).all()
        for schedule_id, faculty_id, class_section_id, day, time in rows:
            print(f"  - schedule {schedule_id}: faculty {faculty_id}, section {class_section_id}, {day.value} {time}")

        if not args.delete:
            print("Dry run. Re-run with --delete to remove them.")
            return 0

        deleted = delete_schedules(db, report.schedule_ids)
        db.commit()
        print(f"Deleted {deleted} orphaned schedules.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
