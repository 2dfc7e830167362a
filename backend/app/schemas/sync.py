from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.models.sync_outbox import OutboxStatus


class FetchAllRequest(BaseModel):
    data: Literal["fetch-all-schedules", "fetch-all-sections"]


class WorkloadValidateRequest(BaseModel):
    employeeId: str = Field(min_length=1, max_length=50)
    additionalSections: int = Field(default=0, ge=0)
    additionalMinutes: int = Field(default=0, ge=0)
    day: str | None = None
    time: str | None = None


class XrLeaveOut(BaseModel):
    leaveId: int
    type: str
    startDate: date
    endDate: date
    reason: str | None = None
    status: str


class FacultyAvailabilityOut(BaseModel):
    employeeId: str | None
    facultyId: int
    name: str
    email: str | None = None
    isAvailable: bool
    availability: dict
    employmentStatus: str
    employeeType: str
    currentLeave: XrLeaveOut | None = None
    upcomingLeaves: list[XrLeaveOut]


class XrScheduleOut(BaseModel):
    id: int
    sisScheduleId: int | None = None
    day: str
    time: str
    durationMinutes: int
    subjectCode: str | None = None
    subjectName: str | None = None
    sectionName: str | None = None
    employeeId: str | None = None
    teacherName: str | None = None


class OutboxMessageOut(BaseModel):
    id: int
    endpoint: str
    payload: dict
    status: OutboxStatus
    attempts: int
    error_kind: str | None = None
    last_error: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    next_attempt_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OutboxDrainResponse(BaseModel):
    attempted: int
    delivered: int
    retrying: int
    failed: int


class SyncExistingResponse(BaseModel):
    success: bool = True
    fetched: int
    queued: int
    delivered: int
    skipped: list[dict] = Field(default_factory=list)
    results: list[dict] = Field(default_factory=list)


class SisScheduleRow(BaseModel):
    sisScheduleId: int | None = None
    day: str | None = None
    time: str
    durationMinutes: int | None = None
    subjectName: str
    subjectId: int | None = None
    sectionName: str
    classSectionId: int | None = None
    assignedInSis: bool
    sisTeacherId: str | None = None
    hrmsScheduleId: int | None = None
    hrmsFacultyId: int | None = None
    hrmsTeacherName: str | None = None


class SisSectionRow(BaseModel):
    classSectionId: int
    name: str
    gradeLevel: str | None = None
    sisSectionId: int | None = None
    sisAdviser: str | None = None
    matched: bool
