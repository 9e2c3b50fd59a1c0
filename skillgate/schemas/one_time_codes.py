"""
Pydantic schemas for one-time code endpoints.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from skillgate.models import AccessLevel


class GenerateCodesRequest(BaseModel):
    """Schema for generating a batch of codes."""

    test_type_id: int = Field(..., description="Test type the codes unlock")
    count: int = Field(default=1, description="Number of codes to create (1-50)")
    expires_at: Optional[datetime] = Field(
        None, description="Absolute expiry time (must be in the future)"
    )
    expires_in_hours: Optional[int] = Field(
        None, description="Relative expiry in hours (alternative to expires_at)"
    )


class OneTimeCodeResponse(BaseModel):
    """Schema for a one-time code."""

    id: int
    code: str
    test_type_id: int
    created_by: Optional[int] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool
    used_by: Optional[int] = None
    used_at: Optional[datetime] = None
    status: str = Field(..., description="active, used, expired or inactive")


class GenerateCodesResponse(BaseModel):
    """Schema for a generated batch."""

    codes: List[OneTimeCodeResponse]
    count: int


class CodeStatsResponse(BaseModel):
    total: int
    active: int
    used: int
    expired: int
    inactive: int
    total_usage: int


class CodeListResponse(BaseModel):
    """Schema for the admin code listing."""

    codes: List[OneTimeCodeResponse]
    stats: CodeStatsResponse


class RedeemCodeRequest(BaseModel):
    """Schema for redeeming a code."""

    code: str = Field(..., min_length=1, max_length=64)

    @field_validator("code")
    @classmethod
    def code_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Code cannot be blank")
        return value


class RedeemCodeResponse(BaseModel):
    """Schema for a successful redemption."""

    success: bool = True
    test_type_id: int
    test_type_name: str
    test_type_display_name: str
    access_level: AccessLevel
    message: str
