"""
Admin audit log endpoint.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillgate.core.audit import list_admin_actions, parse_details
from skillgate.models import AdminActionType, User, get_db
from skillgate.schemas.audit import AdminActionResponse, AuditLogResponse

from ._dependencies import get_current_admin

router = APIRouter()


@router.get("/audit-log", response_model=AuditLogResponse)
def get_audit_log(
    action: Optional[AdminActionType] = Query(None, description="Filter by action"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Audit entries, newest first."""
    entries = [
        AdminActionResponse(
            id=entry.id,
            actor_id=entry.actor_id,
            action=entry.action,
            target_id=entry.target_id,
            details=parse_details(entry.details),
            created_at=entry.created_at,
        )
        for entry in list_admin_actions(db, action=action, limit=limit, offset=offset)
    ]
    return AuditLogResponse(entries=entries, count=len(entries))
