"""
Pydantic schemas for the admin audit log.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from skillgate.core.audit import AuditDetails
from skillgate.models import AdminActionType


class AdminActionResponse(BaseModel):
    """Schema for an audit log entry."""

    id: int
    actor_id: Optional[int] = None
    action: AdminActionType
    target_id: Optional[int] = None
    details: AuditDetails
    created_at: datetime

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class AuditLogResponse(BaseModel):
    entries: List[AdminActionResponse]
    count: int
