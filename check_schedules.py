from collections import Counter

from app.db.session import SessionLocal
from app.models.class_section import ClassSection
from app.models.faculty import Faculty
from app.models.schedule import Schedule
from app.models.sync_outbox import OutboxStatus, SyncOutboxMessage
from app.models.substitute_assignment import SubstituteAssignment, SubstituteAssignmentStatus
from app.services.time_range import parse_time_range

db = SessionLocal()
try:
    schedules = db.query(Schedule).all()
    print(f"Faculty Records: {db.query(Faculty).filter(Faculty.is_deleted.is_(False)).count()}")
    print(f"Sections: {db.query(ClassSection).filter(ClassSection.is_deleted.is_(False)).count()}")
    print(f"Schedules: {len(schedules)}")

    by_day = Counter(item.day.value for item in schedules)
    for day, count in sorted(by_day.items()):
        print(f"  - {day}: {count}")

    bad_times = [item for item in schedules if parse_time_range(item.time) is None]
    print(f"Unparseable times: {len(bad_times)}")
    for item in bad_times[:5]:
        print(f"  - schedule {item.id}: {item.time!r}")

    active_subs = (
        db.query(SubstituteAssignment)
        .filter(SubstituteAssignment.status == SubstituteAssignmentStatus.active)
        .count()
    )
    print(f"Active substitutions: {active_subs}")

    for status in OutboxStatus:
        count = db.query(SyncOutboxMessage).filter(SyncOutboxMessage.status == status).count()
        print(f"Outbox {status.value}: {count}")
finally:
    db.close()
