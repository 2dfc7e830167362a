from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base


class EmploymentStatus(str, Enum):
    regular = "regular"
    probationary = "probationary"
    part_time = "part_time"
    resigned = "resigned"
    retired = "retired"


class EmployeeType(str, Enum):
    full_time = "full_time"
    part_time = "part_time"
    probationary = "probationary"


INACTIVE_EMPLOYMENT_STATUSES = {EmploymentStatus.resigned, EmploymentStatus.retired}


class Faculty(Base):
    __tablename__ = "faculty"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    employee_id: Mapped[str | None] = mapped_column(String(50), unique=True, index=True, nullable=True)
    employment_status: Mapped[EmploymentStatus] = mapped_column(
        SAEnum(EmploymentStatus, name="employment_status"),
        nullable=False,
        default=EmploymentStatus.regular,
    )
    employee_type: Mapped[EmployeeType] = mapped_column(
        SAEnum(EmployeeType, name="employee_type"),
        nullable=False,
        default=EmployeeType.full_time,
    )
    position: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", lazy="joined")

    @property
    def name(self) -> str:
        return self.user.full_name if self.user is not None else ""

    @property
    def email(self) -> str | None:
        return self.user.email if self.user is not None else None

    @property
    def is_active(self) -> bool:
        if self.is_deleted or self.employment_status in INACTIVE_EMPLOYMENT_STATUSES:
            return False
        return self.user is not None and self.user.is_active
