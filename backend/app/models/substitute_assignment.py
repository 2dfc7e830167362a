from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class SubstituteAssignmentStatus(str, Enum):
    active = "active"
    restored = "restored"


class SubstituteAssignment(Base):
    __tablename__ = "substitute_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    original_faculty_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    substitute_faculty_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    leave_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[SubstituteAssignmentStatus] = mapped_column(
        SAEnum(SubstituteAssignmentStatus, name="substitute_assignment_status"),
        nullable=False,
        default=SubstituteAssignmentStatus.active,
    )
    active_from: Mapped[date] = mapped_column(Date, nullable=False)
    active_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    assigned_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    restored_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    restored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
