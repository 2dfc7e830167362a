from datetime import date, datetime

from pydantic import BaseModel, Field

from app.models.substitute_assignment import SubstituteAssignmentStatus
from app.schemas.schedule import ScheduleOut, SyncResultOut


class SubstituteRequest(BaseModel):
    substituteFacultyId: int = Field(gt=0)
    leaveId: int | None = None
    sisScheduleId: int | None = None
    activeTo: date | None = None
    notes: str | None = Field(default=None, max_length=1000)


class RestoreOriginalTeacherRequest(BaseModel):
    hrmsScheduleId: int = Field(gt=0)
    originalFacultyId: int = Field(gt=0)
    sisScheduleId: int | None = None
    force: bool = False


class SubstituteAssignmentOut(BaseModel):
    id: int
    schedule_id: int
    original_faculty_id: int
    substitute_faculty_id: int
    leave_id: int | None = None
    status: SubstituteAssignmentStatus
    active_from: date
    active_to: date | None = None
    assigned_by_id: str | None = None
    restored_by_id: str | None = None
    restored_at: datetime | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class SubstituteResponse(BaseModel):
    success: bool = True
    message: str
    schedule: ScheduleOut
    substitution: SubstituteAssignmentOut
    sync: SyncResultOut | None = None
