from itertools import combinations

from sqlalchemy import func, select

from app.models.activity_log import ActivityLog
from app.models.faculty import EmploymentStatus
from app.models.schedule import Schedule, Weekday
from app.models.schedule_slot_claim import ClaimScope, ScheduleSlotClaim
from app.models.user import UserRole
from app.services.time_range import time_ranges_overlap


def _setup(seed):
    return {
        "santos": seed.faculty("Maria Santos", employee_id="EMP-100"),
        "reyes": seed.faculty("Jose Reyes", employee_id="EMP-200"),
        "math": seed.subject("Mathematics", "MATH7"),
        "rizal": seed.section("Grade 7 - Rizal"),
        "bonifacio": seed.section("Grade 7 - Bonifacio"),
    }


def _assign_payload(faculty, subject, section, day="Monday", time="08:00-09:00", **extra):
    payload = {
        "facultyId": faculty.id,
        "subjectId": subject.id,
        "classSectionId": section.id,
        "day": day,
        "time": time,
    }
    payload.update(extra)
    return payload


def test_assign_schedule_creates_row_and_claims(client, db, seed, admin_headers):
    data = _setup(seed)

    response = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["rizal"], day="mon", time="8:00-9:30"),
        headers=admin_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Schedule assigned successfully"
    assert body["schedule"]["day"] == "Monday"
    assert body["schedule"]["time"] == "08:00-09:30"
    assert body["schedule"]["durationMinutes"] == 90
    assert body["schedule"]["teacherName"] == "Maria Santos"
    assert body["sync"] is None

    schedule_id = body["schedule"]["id"]
    claims = db.execute(
        select(ScheduleSlotClaim.scope, func.count(ScheduleSlotClaim.id))
        .where(ScheduleSlotClaim.schedule_id == schedule_id)
        .group_by(ScheduleSlotClaim.scope)
    ).all()
    assert {scope: count for scope, count in claims} == {ClaimScope.faculty: 90, ClaimScope.section: 90}

    log = db.execute(select(ActivityLog).where(ActivityLog.action == "schedule.assign")).scalar_one()
    assert log.entity_id == str(schedule_id)
    assert log.source == "operator"


def test_assign_rejects_teacher_overlap_with_conflict_details(client, seed, admin_headers):
    data = _setup(seed)
    existing = seed.schedule(data["santos"], data["math"], data["rizal"], Weekday.monday, "08:00-09:00")

    response = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["bonifacio"], time="08:30-09:30"),
        headers=admin_headers,
    )

    assert response.status_code == 409
    body = response.json()
    assert body["message"].startswith("Schedule conflicts detected")
    conflicts = body["details"]["conflicts"]
    assert conflicts[0]["type"] == "teacher"
    assert conflicts[0]["conflictingSchedule"]["id"] == existing.id


def test_assign_rejects_invalid_time_and_day(client, seed, admin_headers):
    data = _setup(seed)

    bad_time = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["rizal"], time="09:00-08:00"),
        headers=admin_headers,
    )
    bad_day = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["rizal"], day="Funday"),
        headers=admin_headers,
    )

    assert bad_time.status_code == 422
    assert bad_day.status_code == 422


def test_assign_rejects_deleted_section(client, seed, admin_headers):
    data = _setup(seed)
    gone = seed.section("Grade 7 - Luna", is_deleted=True)

    response = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], gone),
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid class section ID"


def test_assign_rejects_inactive_teacher(client, seed, admin_headers):
    data = _setup(seed)
    retired = seed.faculty("Lina Cruz", employment_status=EmploymentStatus.retired)

    response = client.post(
        "/api/schedules",
        json=_assign_payload(retired, data["math"], data["rizal"]),
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["details"]["employmentStatus"] == "retired"


def test_concurrent_claim_on_same_minutes_is_a_conflict(client, db, seed, admin_headers):
    data = _setup(seed)
    # A claim committed by another writer whose schedule row is not visible to the validator.
    db.add(
        ScheduleSlotClaim(
            schedule_id=9999,
            scope=ClaimScope.faculty,
            owner_id=data["santos"].id,
            day=Weekday.monday,
            minute=8 * 60 + 30,
        )
    )
    db.commit()

    response = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["rizal"]),
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert response.json()["message"] == "Schedule slot was taken by a concurrent change"
    db.expire_all()
    assert db.execute(select(func.count(Schedule.id))).scalar_one() == 0


def test_committed_schedules_never_overlap(client, db, seed, admin_headers):
    data = _setup(seed)
    attempts = [
        ("santos", "rizal", "08:00-09:00"),
        ("santos", "bonifacio", "08:30-09:30"),
        ("reyes", "rizal", "08:45-10:00"),
        ("reyes", "bonifacio", "09:00-10:00"),
        ("santos", "rizal", "09:00-10:00"),
        ("santos", "bonifacio", "10:00-11:00"),
        ("reyes", "bonifacio", "10:30-11:30"),
    ]
    for teacher, section, time in attempts:
        client.post(
            "/api/schedules",
            json=_assign_payload(data[teacher], data["math"], data[section], time=time),
            headers=admin_headers,
        )

    db.expire_all()
    rows = list(db.execute(select(Schedule)).unique().scalars())
    assert len(rows) == 4
    for first, second in combinations(rows, 2):
        if first.day != second.day or not time_ranges_overlap(first.time, second.time):
            continue
        assert first.faculty_id != second.faculty_id
        assert first.class_section_id != second.class_section_id


def test_check_conflicts_does_not_write(client, db, seed, admin_headers):
    data = _setup(seed)
    seed.schedule(data["reyes"], data["math"], data["rizal"], Weekday.monday, "08:00-09:00")

    response = client.post(
        "/api/schedules/check-conflicts",
        json=_assign_payload(data["santos"], data["math"], data["rizal"], time="08:30-09:00"),
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["hasConflicts"] is True
    assert body["conflicts"][0]["type"] == "section"
    db.expire_all()
    assert db.execute(select(func.count(Schedule.id))).scalar_one() == 1


def test_update_schedule_excludes_itself(client, seed, admin_headers):
    data = _setup(seed)
    schedule = seed.schedule(data["santos"], data["math"], data["rizal"], Weekday.monday, "08:00-09:00")

    response = client.put(
        f"/api/schedules/{schedule.id}",
        json=_assign_payload(data["santos"], data["math"], data["rizal"], time="08:30-09:30"),
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["schedule"]["time"] == "08:30-09:30"
    assert response.json()["message"] == "Schedule updated successfully"


def test_update_into_another_schedule_conflicts(client, seed, admin_headers):
    data = _setup(seed)
    seed.schedule(data["santos"], data["math"], data["rizal"], Weekday.monday, "08:00-09:00")
    movable = seed.schedule(data["santos"], data["math"], data["bonifacio"], Weekday.monday, "10:00-11:00")

    response = client.put(
        f"/api/schedules/{movable.id}",
        json=_assign_payload(data["santos"], data["math"], data["bonifacio"], time="08:30-09:30"),
        headers=admin_headers,
    )

    assert response.status_code == 409


def test_delete_schedule_frees_its_slot(client, seed, admin_headers):
    data = _setup(seed)
    schedule = seed.schedule(data["santos"], data["math"], data["rizal"], Weekday.monday, "08:00-09:00")

    deleted = client.delete(f"/api/schedules/{schedule.id}", headers=admin_headers)
    missing = client.get(f"/api/schedules/{schedule.id}", headers=admin_headers)
    reassigned = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["rizal"]),
        headers=admin_headers,
    )

    assert deleted.status_code == 204
    assert missing.status_code == 404
    assert reassigned.status_code == 201


def test_list_schedules_orders_by_weekday_and_time(client, seed, admin_headers):
    data = _setup(seed)
    seed.schedule(data["santos"], data["math"], data["rizal"], Weekday.wednesday, "08:00-09:00")
    seed.schedule(data["santos"], data["math"], data["rizal"], Weekday.monday, "13:00-14:00")
    seed.schedule(data["santos"], data["math"], data["bonifacio"], Weekday.monday, "08:00-09:00")
    seed.schedule(data["reyes"], data["math"], data["bonifacio"], Weekday.friday, "08:00-09:00")

    response = client.get(
        "/api/schedules",
        params={"facultyId": data["santos"].id},
        headers=admin_headers,
    )
    monday_only = client.get("/api/schedules", params={"day": "Mon"}, headers=admin_headers)

    assert response.status_code == 200
    assert [(item["day"], item["time"]) for item in response.json()] == [
        ("Monday", "08:00-09:00"),
        ("Monday", "13:00-14:00"),
        ("Wednesday", "08:00-09:00"),
    ]
    assert len(monday_only.json()) == 2


def test_faculty_can_read_but_not_write(client, seed, headers_for):
    data = _setup(seed)
    headers = headers_for(seed.user(UserRole.faculty))

    read = client.get("/api/schedules", headers=headers)
    write = client.post(
        "/api/schedules",
        json=_assign_payload(data["santos"], data["math"], data["rizal"]),
        headers=headers,
    )

    assert read.status_code == 200
    assert write.status_code == 403


def test_schedule_routes_require_a_token(client):
    response = client.get("/api/schedules")
    assert response.status_code in {401, 403}


def test_deleted_teacher_slot_can_be_reassigned(client, db, seed, admin_headers):
    data = _setup(seed)
    departed = seed.schedule(data["reyes"], data["math"], data["rizal"], Weekday.monday, "08:00-09:00")
    data["reyes"].is_deleted = True
    db.commit()
    payload = _assign_payload(data["santos"], data["math"], data["rizal"])

    check = client.post("/api/schedules/check-conflicts", json=payload, headers=admin_headers)
    assigned = client.post("/api/schedules", json=payload, headers=admin_headers)

    assert check.status_code == 200
    assert check.json()["hasConflicts"] is False
    assert assigned.status_code == 201
    leftover = db.execute(
        select(func.count(ScheduleSlotClaim.id)).where(ScheduleSlotClaim.schedule_id == departed.id)
    ).scalar_one()
    assert leftover == 0
    assert db.get(Schedule, departed.id) is not None
