from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field, field_validator

from app.models.schedule import Weekday
from app.services.time_range import normalize_time_range

DAY_SHORT_MAP = {
    "Mon": Weekday.monday,
    "Tue": Weekday.tuesday,
    "Wed": Weekday.wednesday,
    "Thu": Weekday.thursday,
    "Fri": Weekday.friday,
    "Sat": Weekday.saturday,
    "Sun": Weekday.sunday,
}
WEEKDAY_BY_INDEX = list(Weekday)
_DAY_LOOKUP = {day.value.lower(): day for day in Weekday} | {
    short.lower(): day for short, day in DAY_SHORT_MAP.items()
}


def parse_weekday(value: str | Weekday) -> Weekday:
    if isinstance(value, Weekday):
        return value
    day = _DAY_LOOKUP.get(str(value).strip().lower())
    if day is None:
        raise ValueError(f"Invalid day '{value}'. Expected one of: {', '.join(item.value for item in Weekday)}")
    return day


def weekday_of(day: date) -> Weekday:
    return WEEKDAY_BY_INDEX[day.weekday()]


def _validate_time(value: str) -> str:
    normalized = normalize_time_range(value)
    if normalized is None:
        raise ValueError('Invalid time format. Expected format: "HH:MM-HH:MM" with start before end')
    return normalized


class SlotFields(BaseModel):
    facultyId: int = Field(gt=0)
    subjectId: int = Field(gt=0)
    classSectionId: int = Field(gt=0)
    day: Weekday
    time: str = Field(min_length=3, max_length=20)

    @field_validator("day", mode="before")
    @classmethod
    def validate_day(cls, value: str) -> Weekday:
        return parse_weekday(value)

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_time(value)


class ConflictCheckRequest(SlotFields):
    scheduleId: int | None = None


class ScheduleAssignRequest(SlotFields):
    durationMinutes: int | None = Field(default=None, ge=1, le=24 * 60)
    sisScheduleId: int | None = None


class ScheduleUpdateRequest(SlotFields):
    durationMinutes: int | None = Field(default=None, ge=1, le=24 * 60)


class ScheduleOut(BaseModel):
    id: int
    facultyId: int
    subjectId: int
    classSectionId: int
    day: Weekday
    time: str
    durationMinutes: int
    sisScheduleId: int | None = None
    teacherName: str | None = None
    employeeId: str | None = None
    subjectName: str | None = None
    sectionName: str | None = None


class SyncResultOut(BaseModel):
    success: bool = True
    synced: bool
    message: str | None = None
    error: str | None = None
    errorKind: str | None = None
    outboxId: int | None = None


class ScheduleMutationResponse(BaseModel):
    success: bool = True
    message: str
    schedule: ScheduleOut
    sync: SyncResultOut | None = None
