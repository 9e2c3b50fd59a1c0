"""
Standardized error messages and HTTPException builders.

Message format:
- Sentence case, ending with a period
- Include relevant IDs in parentheses when helpful: "(ID: 123)"
- "Please try again later." for transient server errors

Usage:
    from skillgate.core.error_responses import ErrorMessages, raise_unauthorized

    if payload is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN)

Domain services raise ServiceError subclasses (skillgate.core.errors) with
these same messages; the builders below are for transport-level failures.
"""

from typing import NoReturn, Optional

from fastapi import HTTPException, status


class ErrorMessages:
    """Centralized error message constants and templates."""

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    INVALID_TOKEN = "Invalid authentication token."
    INVALID_TOKEN_TYPE = "Invalid token type."
    INVALID_TOKEN_PAYLOAD = "Invalid token payload."
    USER_NOT_FOUND_AUTH = "User not found."
    USER_INACTIVE = "User account is deactivated."

    # ==========================================================================
    # Authorization Errors (403)
    # ==========================================================================
    ADMIN_REQUIRED = "Administrator access required."
    SESSION_ACCESS_DENIED = "Not authorized to access this test session."
    TEST_ACCESS_DENIED = "You do not have access to this test."
    ONE_TIME_ACCESS_SPENT = (
        "Your one-time access for this test has already been used."
    )

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    TEST_TYPE_NOT_FOUND = "Test type not found."
    TEST_SESSION_NOT_FOUND = "Test session not found."
    CODE_NOT_FOUND = "Invalid access code."
    CODE_RECORD_NOT_FOUND = "Access code not found."
    REQUEST_NOT_FOUND = "Test request not found."
    USER_NOT_FOUND = "User not found."
    NO_CONTENT_AVAILABLE = "No test content is available for this test type."

    # ==========================================================================
    # Conflict Errors (409)
    # ==========================================================================
    CODE_ALREADY_USED = "This access code has already been used."
    CODE_EXPIRED = "This access code has expired."
    CODE_ALREADY_INACTIVE = "Access code is already inactive."
    CODE_USED_CANNOT_DEACTIVATE = "Cannot deactivate a code that has been used."
    CODE_IN_USE_CANNOT_DELETE = (
        "Cannot delete a code that has been used or is attached to a test session."
    )
    ALREADY_ENTITLED = "You already have access to this test."
    REQUEST_ALREADY_PROCESSED = "This request has already been processed."
    # Database-level race detection; the existing session id is unavailable
    SESSION_ALREADY_IN_PROGRESS = (
        "A test session is already in progress for this test. "
        "Please complete the existing session before starting a new one."
    )
    SESSION_NOT_ACTIVE = "Only started test sessions can be updated."
    SESSION_NOT_PAUSED = "Only paused test sessions can be resumed."
    SESSION_NOT_CANCELLABLE = "Only started or paused test sessions can be cancelled."

    # ==========================================================================
    # Bad Request Errors (400)
    # ==========================================================================
    NO_ELIGIBLE_TEST_TYPES = (
        "You already have access or pending requests for all selected tests."
    )
    INVALID_TEST_TYPES = "One or more selected test types are invalid."
    EXPIRY_IN_PAST = "Expiry time must be in the future."
    EXPIRY_CONFLICT = "Provide either expires_at or expires_in_hours, not both."

    # ==========================================================================
    # Upstream / Server Errors (5xx)
    # ==========================================================================
    CONTENT_PROVIDER_FAILED = (
        "Test content could not be loaded. Please try again later."
    )
    CODE_GENERATION_EXHAUSTED = (
        "Failed to generate unique access codes. Please try again later."
    )
    DATABASE_ERROR = "A database error occurred. Please try again later."

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def active_session_exists(session_id: int) -> str:
        """Message for an active session blocking a new one.

        Includes the session id so clients can offer to resume it.
        """
        return (
            f"You already have an active session for this test (ID: {session_id}). "
            "Please complete the existing session before starting a new one."
        )

    @staticmethod
    def batch_size_out_of_range(maximum: int) -> str:
        return f"Count must be between 1 and {maximum}."

    @staticmethod
    def expiry_hours_out_of_range(maximum: int) -> str:
        return f"Expiry must be between 1 and {maximum} hours."

    @staticmethod
    def invalid_access_level(level: str) -> str:
        return f"Access level {level} cannot be granted here."

    @staticmethod
    def session_not_started(status: str) -> str:
        """Message for progress/complete on a session that is not running."""
        return f"Test session is {status}. Only started test sessions can be updated."


# =============================================================================
# HTTPException Builder Functions
# =============================================================================


def raise_unauthorized(detail: str, headers: Optional[dict] = None) -> NoReturn:
    """Raise a 401 Unauthorized HTTPException."""
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers=headers or {"WWW-Authenticate": "Bearer"},
    )


def raise_forbidden(detail: str) -> NoReturn:
    """Raise a 403 Forbidden HTTPException."""
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
