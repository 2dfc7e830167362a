from typing import Literal

from pydantic import BaseModel, Field


class ConflictingSchedule(BaseModel):
    id: int
    subjectName: str
    sectionName: str
    teacherName: str
    day: str
    time: str


class ConflictDetail(BaseModel):
    type: Literal["teacher", "section"]
    message: str
    conflictingSchedule: ConflictingSchedule


class ConflictReport(BaseModel):
    conflicts: list[ConflictDetail] = Field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def as_details(self) -> list[dict]:
        return [item.model_dump() for item in self.conflicts]


class ConflictCheckResponse(BaseModel):
    hasConflicts: bool
    conflicts: list[ConflictDetail]
