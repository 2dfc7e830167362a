from datetime import date, timedelta

import pytest

from app.core.config import get_settings
from app.models.faculty import EmployeeType, EmploymentStatus
from app.models.schedule import Weekday
from app.services.request_signing import canonical_json, compute_signature, current_timestamp_ms


def _signed(body=None, *, api_key=None, timestamp=None, secret=None):
    settings = get_settings()
    raw = "" if body is None else canonical_json(body)
    ts = timestamp or current_timestamp_ms()
    headers = {
        "Authorization": f"Bearer {api_key or settings.sis_api_key}",
        "x-timestamp": ts,
        "x-signature": compute_signature(secret or settings.sis_shared_secret, raw, ts),
        "Content-Type": "application/json",
    }
    return raw, headers


@pytest.fixture
def teacher(seed):
    return seed.faculty("Maria Santos", employee_id="EMP-100", employee_type=EmployeeType.part_time)


def test_availability_for_available_teacher(client, seed, teacher):
    upcoming = seed.leave(teacher, date.today() + timedelta(days=10), date.today() + timedelta(days=12))
    _, headers = _signed()

    response = client.get("/api/xr/faculty-availability/EMP-100", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["isAvailable"] is True
    assert body["availability"]["status"] == "available"
    assert body["employeeType"] == "part_time"
    assert [item["leaveId"] for item in body["upcomingLeaves"]] == [upcoming.id]
    assert response.headers["cache-control"] == "no-store"


def test_availability_reports_current_leave(client, seed, teacher):
    seed.leave(teacher, date.today() - timedelta(days=1), date.today() + timedelta(days=1))
    _, headers = _signed()

    body = client.get("/api/xr/faculty-availability/EMP-100", headers=headers).json()

    assert body["isAvailable"] is False
    assert body["availability"]["status"] == "on_leave"
    assert body["currentLeave"]["type"] == "sick"


def test_availability_reports_inactive_teacher(client, seed):
    seed.faculty("Eva Cruz", employee_id="EMP-300", employment_status=EmploymentStatus.resigned)
    _, headers = _signed()

    body = client.get("/api/xr/faculty-availability/EMP-300", headers=headers).json()

    assert body["availability"]["status"] == "inactive"


def test_unknown_employee_is_not_found(client):
    _, headers = _signed()
    assert client.get("/api/xr/faculty-availability/EMP-404", headers=headers).status_code == 404


def test_lms_key_is_accepted(client, teacher):
    _, headers = _signed(api_key=get_settings().lms_api_key)
    assert client.get("/api/xr/faculty-availability/EMP-100", headers=headers).status_code == 200


def test_missing_api_key_is_unauthorized(client, teacher):
    _, headers = _signed()
    headers.pop("Authorization")

    response = client.get("/api/xr/faculty-availability/EMP-100", headers=headers)

    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized"


def test_stale_timestamp_is_bad_request(client, teacher):
    old = str(int(current_timestamp_ms()) - 10 * 60 * 1000)
    _, headers = _signed(timestamp=old)

    response = client.get("/api/xr/faculty-availability/EMP-100", headers=headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request"


def test_wrong_secret_is_forbidden(client, teacher):
    _, headers = _signed(secret="someone-else")

    response = client.get("/api/xr/faculty-availability/EMP-100", headers=headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Invalid signature"


def test_workload_within_limits(client, seed, teacher):
    subject = seed.subject()
    section = seed.section()
    seed.schedule(teacher, subject, section, Weekday.monday, "08:00-10:00")
    raw, headers = _signed({"employeeId": "EMP-100", "additionalSections": 1, "day": "Tuesday", "time": "08:00-09:30"})

    response = client.post("/api/xr/faculty-workload/validate", content=raw, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["canAssign"] is True
    assert body["currentWorkload"] == {"sections": 1, "hoursPerWeek": 2.0}
    assert body["proposedWorkload"] == {"sections": 2, "hoursPerWeek": 3.5}
    assert body["limits"] == {"maxSections": 5, "maxHoursPerWeek": 20}


def test_workload_over_hours_and_conflicting(client, seed, teacher):
    subject = seed.subject()
    section = seed.section()
    seed.schedule(teacher, subject, section, Weekday.monday, "08:00-10:00")
    raw, headers = _signed(
        {"employeeId": "EMP-100", "additionalMinutes": 19 * 60, "day": "Monday", "time": "09:00-10:00"}
    )

    body = client.post("/api/xr/faculty-workload/validate", content=raw, headers=headers).json()

    assert body["canAssign"] is False
    assert body["checks"] == {"exceedsHours": True, "exceedsSections": False, "scheduleConflict": True}
    assert "Exceeds maximum hours (22.0/20 hours)" in body["reason"]
    assert body["conflicts"][0]["time"] == "08:00-10:00"


def test_workload_for_teacher_on_leave(client, seed, teacher):
    seed.leave(teacher, date.today(), date.today())
    raw, headers = _signed({"employeeId": "EMP-100"})

    body = client.post("/api/xr/faculty-workload/validate", content=raw, headers=headers).json()

    assert body["canAssign"] is False
    assert body["reason"] == "Faculty is currently on leave"


def test_workload_rejects_invalid_payload(client, teacher):
    raw, headers = _signed({"additionalSections": -1})

    response = client.post("/api/xr/faculty-workload/validate", content=raw, headers=headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request data"


def test_tampered_body_is_rejected_before_parsing(client, teacher):
    raw, headers = _signed({"employeeId": "EMP-100"})

    response = client.post(
        "/api/xr/faculty-workload/validate",
        content=raw.replace("EMP-100", "EMP-999"),
        headers=headers,
    )

    assert response.status_code == 403


def test_fetch_all_schedules_skips_orphans(client, db, seed, teacher):
    subject = seed.subject("Mathematics", "MATH7")
    kept = seed.section("Grade 7 - Rizal")
    dropped = seed.section("Grade 7 - Luna")
    seed.schedule(teacher, subject, kept, Weekday.monday, "08:00-09:00", sis_schedule_id=501)
    seed.schedule(teacher, subject, dropped, Weekday.tuesday, "08:00-09:00")
    dropped.is_deleted = True
    db.commit()
    raw, headers = _signed({"data": "fetch-all-schedules"})

    response = client.post("/api/xr/schedules", content=raw, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    row = body["data"][0]
    assert row["sisScheduleId"] == 501
    assert row["employeeId"] == "EMP-100"
    assert row["subjectCode"] == "MATH7"
    assert row["sectionName"] == "Grade 7 - Rizal"


def test_fetch_all_requires_known_command(client):
    raw, headers = _signed({"data": "drop-tables"})
    assert client.post("/api/xr/schedules", content=raw, headers=headers).status_code == 400


def test_xr_routes_are_rate_limited(client, teacher, monkeypatch):
    monkeypatch.setattr(get_settings(), "xr_rate_limit_max_requests", 2)

    statuses = []
    for _ in range(3):
        _, headers = _signed()
        statuses.append(client.get("/api/xr/faculty-availability/EMP-100", headers=headers).status_code)

    assert statuses == [200, 200, 429]


def test_workload_summary_for_teacher(client, db, seed, teacher):
    subject = seed.subject("Mathematics", "MATH7")
    section = seed.section("Grade 7 - Rizal")
    dropped = seed.section("Grade 7 - Luna")
    seed.schedule(teacher, subject, section, Weekday.wednesday, "09:00-10:00")
    seed.schedule(teacher, subject, section, Weekday.monday, "08:00-10:00")
    seed.schedule(teacher, subject, dropped, Weekday.friday, "08:00-09:00")
    dropped.is_deleted = True
    db.commit()
    _, headers = _signed()

    response = client.get("/api/xr/faculty-workload/EMP-100", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["employeeId"] == "EMP-100"
    assert body["workload"] == {
        "totalSections": 2,
        "totalHoursPerWeek": 3.0,
        "maxSections": 5,
        "maxHoursPerWeek": 20,
        "availableHours": 17.0,
        "workloadPercentage": 15,
        "canTakeMoreSections": True,
        "status": "Light Load",
    }
    assert body["hoursPerDay"] == [
        {"day": "Monday", "totalHours": 2.0, "numberOfClasses": 1},
        {"day": "Wednesday", "totalHours": 1.0, "numberOfClasses": 1},
    ]
    assert [item["day"] for item in body["schedules"]] == ["Monday", "Wednesday"]
    assert body["recommendations"]["suggestedMaxAdditionalSections"] == 3
    assert body["recommendations"]["warnings"] == []
    assert response.headers["cache-control"] == "no-store"


def test_workload_summary_requires_signature(client, teacher):
    _, headers = _signed(secret="someone-else")

    response = client.get("/api/xr/faculty-workload/EMP-100", headers=headers)

    assert response.status_code == 403


def test_workload_summary_unknown_employee(client):
    _, headers = _signed()
    assert client.get("/api/xr/faculty-workload/EMP-404", headers=headers).status_code == 404
