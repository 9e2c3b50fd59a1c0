"""
Shared response schemas.
"""
from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Schema for a plain confirmation."""

    success: bool = True
    message: str
