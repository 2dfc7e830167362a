import json

import httpx
import pytest
from sqlalchemy import select

from app.api.deps import get_sis_client
from app.core.config import get_settings
from app.main import app
from app.models.schedule import Weekday
from app.models.sync_outbox import OutboxStatus, SyncOutboxMessage
from app.models.user import UserRole
from app.services.sis_client import SisClient

SIS_SCHEDULES = [
    {
        "scheduleId": 501,
        "schedule": {"day": "Monday", "startTime": "8:00", "endTime": "9:00"},
        "subject": {"name": "Mathematics", "code": "MATH7"},
        "section": {"name": "Grade 7 - Rizal"},
        "teacher": {"assigned": True, "teacherId": "EMP-100"},
    },
    {
        "scheduleId": 502,
        "schedule": {"day": "Tue", "startTime": "10:00", "endTime": "11:00"},
        "subject": {"name": "Music", "code": "MUS7"},
        "section": {"name": "Grade 7 - Rizal"},
        "teacher": {"assigned": False},
    },
]


def _use_sis(handler):
    app.dependency_overrides[get_sis_client] = lambda: SisClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def local_data(seed):
    teacher = seed.faculty("Maria Santos", employee_id="EMP-100")
    math = seed.subject("Mathematics", "MATH7")
    rizal = seed.section("Grade 7 - Rizal")
    seed.section("Grade 7 - Luna")
    schedule = seed.schedule(teacher, math, rizal, Weekday.monday, "08:00-09:00")
    return {"teacher": teacher, "math": math, "rizal": rizal, "schedule": schedule}


def test_sis_schedules_are_matched_to_local_rows(client, local_data, admin_headers):
    _use_sis(lambda request: httpx.Response(200, json={"data": SIS_SCHEDULES}))

    response = client.get("/api/sis/schedules", headers=admin_headers)

    assert response.status_code == 200
    first, second = response.json()
    assert first["sisScheduleId"] == 501
    assert first["day"] == "Monday"
    assert first["time"] == "08:00-09:00"
    assert first["subjectId"] == local_data["math"].id
    assert first["hrmsScheduleId"] == local_data["schedule"].id
    assert first["hrmsTeacherName"] == "Maria Santos"
    assert first["assignedInSis"] is True
    assert second["day"] == "Tuesday"
    assert second["subjectId"] is None
    assert second["subjectName"] == "Music"
    assert second["hrmsScheduleId"] is None


def test_sis_sections_are_merged_by_name(client, local_data, admin_headers):
    _use_sis(
        lambda request: httpx.Response(
            200,
            json={"data": [{"sectionId": 77, "section": {"name": "grade 7 - rizal"}, "adviser": "Mr. Lim"}]},
        )
    )

    response = client.get("/api/sis/sections", headers=admin_headers)

    assert response.status_code == 200
    rows = {item["name"]: item for item in response.json()}
    assert rows["Grade 7 - Rizal"]["sisSectionId"] == 77
    assert rows["Grade 7 - Rizal"]["sisAdviser"] == "Mr. Lim"
    assert rows["Grade 7 - Luna"]["matched"] is False


def test_html_from_sis_is_a_bad_gateway(client, admin_headers):
    _use_sis(lambda request: httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"}))

    response = client.get("/api/sis/schedules", headers=admin_headers)

    assert response.status_code == 502
    assert "SIS_BASE_URL" in response.json()["detail"]


def test_unconfigured_sis_is_unavailable(client, admin_headers, monkeypatch):
    monkeypatch.setattr(get_settings(), "sis_shared_secret", "")
    _use_sis(lambda request: httpx.Response(200, json={"data": []}))

    response = client.get("/api/sis/schedules", headers=admin_headers)

    assert response.status_code == 503


def test_drain_is_admin_only(client, seed, headers_for, admin_headers):
    scheduler_headers = headers_for(seed.user(UserRole.scheduler))
    _use_sis(lambda request: httpx.Response(200, json={"success": True}))

    forbidden = client.post("/api/sis/outbox/drain", headers=scheduler_headers)
    drained = client.post("/api/sis/outbox/drain", headers=admin_headers)

    assert forbidden.status_code == 403
    assert drained.status_code == 200
    assert drained.json() == {"attempted": 0, "delivered": 0, "retrying": 0, "failed": 0}


def test_sync_existing_pushes_matched_assignments(client, db, local_data, admin_headers, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "sis_sync_enabled", True)
    pushed = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == settings.sis_update_endpoint:
            pushed.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json={"data": SIS_SCHEDULES})

    _use_sis(handler)

    response = client.post("/api/sis/sync-existing", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["fetched"] == 2
    assert body["queued"] == 1
    assert body["delivered"] == 1
    assert body["skipped"] == [{"sisScheduleId": 502, "reason": "No matching local schedule"}]
    assert [(item["scheduleId"], item["employeeId"]) for item in pushed] == [(501, "EMP-100")]

    message = db.execute(select(SyncOutboxMessage)).scalar_one()
    db.refresh(message)
    assert message.status == OutboxStatus.delivered
    assert message.entity_id == str(local_data["schedule"].id)


def test_sync_existing_reports_disabled_sync(client, db, local_data, admin_headers):
    _use_sis(lambda request: httpx.Response(200, json={"data": SIS_SCHEDULES}))

    body = client.post("/api/sis/sync-existing", headers=admin_headers).json()

    assert body["queued"] == 0
    assert any("SIS_SYNC_ENABLED" in item["reason"] for item in body["skipped"])
    assert db.execute(select(SyncOutboxMessage)).first() is None


def test_sync_existing_is_admin_only(client, seed, headers_for):
    scheduler_headers = headers_for(seed.user(UserRole.scheduler))
    _use_sis(lambda request: httpx.Response(200, json={"data": []}))

    assert client.post("/api/sis/sync-existing", headers=scheduler_headers).status_code == 403
