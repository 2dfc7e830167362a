from datetime import date

from pydantic import BaseModel


class AvailableTeacherOut(BaseModel):
    facultyId: int
    employeeId: str | None = None
    name: str
    email: str | None = None
    position: str | None = None
    currentLoad: int


class AvailableTeachersResponse(BaseModel):
    success: bool = True
    availableTeachers: list[AvailableTeacherOut]
    total: int


class ActiveLeaveOut(BaseModel):
    leaveId: int
    leaveType: str
    startDate: date
    endDate: date
    reason: str | None = None


class LeaveStatusEntry(BaseModel):
    isOnLeave: bool
    leave: ActiveLeaveOut | None = None


class LeaveStatusResponse(BaseModel):
    success: bool = True
    leaveStatus: dict[int, LeaveStatusEntry]


class SlotSuggestionOut(BaseModel):
    scheduleId: int
    day: str
    time: str
    subjectName: str | None = None
    sectionName: str | None = None
    candidates: list[AvailableTeacherOut]


class LeaveSuggestionsResponse(BaseModel):
    success: bool = True
    leaveId: int
    facultyId: int
    slots: list[SlotSuggestionOut]
