"""
Pydantic schemas for entitlements and admin access management.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from skillgate.models import AccessLevel, GrantSource


class EntitlementResponse(BaseModel):
    """Schema for a stored entitlement."""

    user_id: int
    test_type_id: int
    access_level: AccessLevel
    is_active: bool
    granted_by: Optional[int] = None
    granted_at: datetime
    source: GrantSource
    source_code_id: Optional[int] = None

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class SetAccessRequest(BaseModel):
    """Schema for setting a user's access level for a test type."""

    test_type_id: int = Field(..., description="Test type ID")
    access_level: AccessLevel = Field(
        ..., description="New level; NONE removes the entitlement"
    )
    is_active: bool = Field(
        True,
        description="False stores the level suspended; it grants nothing until reactivated",
    )


class ToggleAccessRequest(BaseModel):
    """Schema for granting or revoking access with a single flag."""

    test_type_id: int = Field(..., description="Test type ID")
    grant: bool = Field(..., description="True to grant, False to revoke")


class AccessChangeResponse(BaseModel):
    """Schema for the outcome of an admin access change."""

    success: bool = True
    user_id: int
    test_type_id: int
    previous_level: AccessLevel
    access_level: AccessLevel
    is_active: bool = True
    approved_request_ids: List[int] = Field(default_factory=list)
