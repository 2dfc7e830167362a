from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.class_section import ClassSection  # noqa: F401
from app.models.faculty import EmployeeType, EmploymentStatus, Faculty  # noqa: F401
from app.models.leave import Leave, LeaveStatus, LeaveType  # noqa: F401
from app.models.schedule import Schedule, Weekday  # noqa: F401
from app.models.schedule_slot_claim import ClaimScope, ScheduleSlotClaim  # noqa: F401
from app.models.subject import Subject  # noqa: F401
from app.models.substitute_assignment import (  # noqa: F401
    SubstituteAssignment,
    SubstituteAssignmentStatus,
)
from app.models.sync_outbox import OutboxStatus, SyncOutboxMessage  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
