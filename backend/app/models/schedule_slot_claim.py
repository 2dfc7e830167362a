from enum import Enum

from sqlalchemy import Enum as SAEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.schedule import Weekday


class ClaimScope(str, Enum):
    faculty = "faculty"
    section = "section"


class ScheduleSlotClaim(Base):
    """One occupied minute of a schedule, per teacher and per section.

    The unique constraint is what keeps two concurrent writers from committing
    overlapping schedules for the same teacher or section.
    """

    __tablename__ = "schedule_slot_claims"
    __table_args__ = (
        UniqueConstraint("scope", "owner_id", "day", "minute", name="uq_schedule_slot_claims_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(
        ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope: Mapped[ClaimScope] = mapped_column(SAEnum(ClaimScope, name="claim_scope"), nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    day: Mapped[Weekday] = mapped_column(SAEnum(Weekday, name="weekday"), nullable=False)
    minute: Mapped[int] = mapped_column(Integer, nullable=False)
