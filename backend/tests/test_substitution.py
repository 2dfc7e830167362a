from datetime import date, timedelta

import pytest

from app.core.exceptions import InvalidInputError, ScheduleConflictError, StateTransitionError
from app.models.activity_log import ActivityLog
from app.models.schedule import Schedule, Weekday
from app.models.substitute_assignment import SubstituteAssignment, SubstituteAssignmentStatus
from app.services.substitution import active_substitution, restore_original_teacher, substitute_teacher


@pytest.fixture
def classroom(seed):
    santos = seed.faculty("Maria Santos", employee_id="EMP-100")
    reyes = seed.faculty("Jose Reyes", employee_id="EMP-200")
    cruz = seed.faculty("Lina Cruz", employee_id="EMP-300")
    math = seed.subject("Mathematics", "MATH7")
    rizal = seed.section("Grade 7 - Rizal")
    bonifacio = seed.section("Grade 7 - Bonifacio")
    schedule = seed.schedule(santos, math, rizal, Weekday.monday, "08:00-09:00")
    return {
        "santos": santos,
        "reyes": reyes,
        "cruz": cruz,
        "math": math,
        "rizal": rizal,
        "bonifacio": bonifacio,
        "schedule": schedule,
    }


def test_substitute_then_restore_round_trip(db, classroom):
    schedule = classroom["schedule"]
    assignment = substitute_teacher(db, schedule, substitute_faculty_id=classroom["reyes"].id)
    db.commit()

    assert schedule.faculty_id == classroom["reyes"].id
    assert assignment.original_faculty_id == classroom["santos"].id
    assert assignment.status == SubstituteAssignmentStatus.active

    restored = restore_original_teacher(db, schedule, original_faculty_id=classroom["santos"].id)
    db.commit()

    assert schedule.faculty_id == classroom["santos"].id
    assert restored.id == assignment.id
    assert restored.status == SubstituteAssignmentStatus.restored
    assert restored.restored_at is not None
    assert active_substitution(db, schedule.id) is None


def test_second_substitution_keeps_the_original_teacher(db, classroom):
    schedule = classroom["schedule"]
    first = substitute_teacher(db, schedule, substitute_faculty_id=classroom["reyes"].id)
    second = substitute_teacher(db, schedule, substitute_faculty_id=classroom["cruz"].id)
    db.commit()

    assert second.id == first.id
    assert second.original_faculty_id == classroom["santos"].id
    assert second.substitute_faculty_id == classroom["cruz"].id
    assert db.query(SubstituteAssignment).count() == 1


def test_substitute_must_be_free_at_that_time(db, seed, classroom):
    seed.schedule(classroom["reyes"], classroom["math"], classroom["bonifacio"], Weekday.monday, "08:30-09:30")

    with pytest.raises(ScheduleConflictError) as exc_info:
        substitute_teacher(db, classroom["schedule"], substitute_faculty_id=classroom["reyes"].id)

    assert exc_info.value.details["conflicts"][0]["type"] == "teacher"


def test_substituting_the_current_teacher_is_invalid(db, classroom):
    with pytest.raises(InvalidInputError, match="already assigned"):
        substitute_teacher(db, classroom["schedule"], substitute_faculty_id=classroom["santos"].id)


def test_substituting_back_to_the_original_requires_restore(db, classroom):
    schedule = classroom["schedule"]
    substitute_teacher(db, schedule, substitute_faculty_id=classroom["reyes"].id)
    db.commit()

    with pytest.raises(StateTransitionError, match="restore the original teacher instead"):
        substitute_teacher(db, schedule, substitute_faculty_id=classroom["santos"].id)


def test_substitute_on_leave_is_refused(db, seed, classroom):
    seed.leave(classroom["reyes"], date.today(), date.today() + timedelta(days=3))

    with pytest.raises(InvalidInputError, match="on approved leave"):
        substitute_teacher(db, classroom["schedule"], substitute_faculty_id=classroom["reyes"].id)


def test_leave_must_belong_to_the_original_teacher(db, seed, classroom):
    other_leave = seed.leave(classroom["cruz"], date.today(), date.today())

    with pytest.raises(InvalidInputError, match="original teacher"):
        substitute_teacher(
            db,
            classroom["schedule"],
            substitute_faculty_id=classroom["reyes"].id,
            leave_id=other_leave.id,
        )


def test_substitution_window_defaults_to_leave_end(db, seed, classroom):
    leave = seed.leave(classroom["santos"], date.today(), date.today() + timedelta(days=4))

    assignment = substitute_teacher(
        db,
        classroom["schedule"],
        substitute_faculty_id=classroom["reyes"].id,
        leave_id=leave.id,
    )

    assert assignment.leave_id == leave.id
    assert assignment.active_to == leave.end_date


def test_restore_rejects_a_teacher_who_is_not_the_recorded_original(db, classroom):
    schedule = classroom["schedule"]
    substitute_teacher(db, schedule, substitute_faculty_id=classroom["reyes"].id)
    db.commit()

    with pytest.raises(StateTransitionError, match="not the recorded original"):
        restore_original_teacher(db, schedule, original_faculty_id=classroom["cruz"].id)


def test_restore_revalidates_the_original_teacher(db, seed, classroom):
    schedule = classroom["schedule"]
    substitute_teacher(db, schedule, substitute_faculty_id=classroom["reyes"].id)
    db.commit()
    # While away, the original teacher picked up another class in the same slot.
    seed.schedule(classroom["santos"], classroom["math"], classroom["bonifacio"], Weekday.monday, "08:30-09:30")

    with pytest.raises(ScheduleConflictError):
        restore_original_teacher(db, schedule, original_faculty_id=classroom["santos"].id)


def test_restore_refuses_teacher_still_on_leave_unless_forced(db, seed, classroom):
    schedule = classroom["schedule"]
    seed.leave(classroom["santos"], date.today(), date.today() + timedelta(days=2))
    substitute_teacher(db, schedule, substitute_faculty_id=classroom["reyes"].id)
    db.commit()

    with pytest.raises(StateTransitionError, match="still on approved leave"):
        restore_original_teacher(db, schedule, original_faculty_id=classroom["santos"].id)

    restore_original_teacher(db, schedule, original_faculty_id=classroom["santos"].id, force=True)
    db.commit()
    assert schedule.faculty_id == classroom["santos"].id


def test_substitute_endpoint_returns_assignment(client, db, classroom, admin_headers):
    schedule = classroom["schedule"]

    response = client.post(
        f"/api/schedules/{schedule.id}/substitute",
        json={"substituteFacultyId": classroom["reyes"].id, "notes": "Covering Monday math"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Substitute teacher assigned successfully"
    assert body["schedule"]["facultyId"] == classroom["reyes"].id
    assert body["substitution"]["original_faculty_id"] == classroom["santos"].id
    assert body["substitution"]["status"] == "active"
    assert body["sync"] is None

    actions = [item.action for item in db.query(ActivityLog).order_by(ActivityLog.created_at)]
    assert "schedule.substitute" in actions


def test_restore_endpoint(client, db, classroom, admin_headers):
    schedule = classroom["schedule"]
    client.post(
        f"/api/schedules/{schedule.id}/substitute",
        json={"substituteFacultyId": classroom["reyes"].id},
        headers=admin_headers,
    )

    response = client.post(
        "/api/schedules/restore-original-teacher",
        json={"hrmsScheduleId": schedule.id, "originalFacultyId": classroom["santos"].id},
        headers=admin_headers,
    )
    unknown = client.post(
        "/api/schedules/restore-original-teacher",
        json={"hrmsScheduleId": schedule.id, "originalFacultyId": 9999},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Original teacher restored successfully"
    assert response.json()["schedule"]["facultyId"] == classroom["santos"].id
    assert unknown.status_code == 404
    db.expire_all()
    assert db.get(Schedule, schedule.id).faculty_id == classroom["santos"].id
