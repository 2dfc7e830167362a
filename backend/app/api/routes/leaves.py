from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.core.exceptions import ResourceNotFoundError
from app.models.leave import Leave
from app.models.user import User, UserRole
from app.schemas.availability import LeaveSuggestionsResponse
from app.services.availability import suggest_substitutes_for_leave

router = APIRouter()


@router.get("/leaves/{leave_id}/substitute-suggestions", response_model=LeaveSuggestionsResponse)
def substitute_suggestions(
    leave_id: int,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> LeaveSuggestionsResponse:
    leave = db.get(Leave, leave_id)
    if leave is None:
        raise ResourceNotFoundError("Leave", leave_id)
    return LeaveSuggestionsResponse(
        leaveId=leave.id,
        facultyId=leave.faculty_id,
        slots=suggest_substitutes_for_leave(db, leave),
    )
