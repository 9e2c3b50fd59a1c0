"""
FastAPI authentication dependencies.

The current actor is resolved from a bearer JWT whose ``user_id`` claim names
a row in ``users``.
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from skillgate.models import get_db, User
from .security import ACCESS_TOKEN_TYPE, decode_token
from .error_responses import ErrorMessages, raise_forbidden, raise_unauthorized

# HTTP Bearer token scheme
security = HTTPBearer()


def _decode_and_validate_token(token: str) -> int:
    """
    Decode an access token and return its user_id.

    Raises:
        HTTPException: 401 if token is invalid, wrong type, or missing user_id
    """
    payload = decode_token(token)
    if payload is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN)

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN_TYPE)

    user_id = payload.get("user_id")
    if user_id is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN_PAYLOAD)

    return user_id


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from the JWT token.

    Raises:
        HTTPException: 401 if the token is invalid or the user is unknown or deactivated
    """
    user_id = _decode_and_validate_token(credentials.credentials)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise_unauthorized(ErrorMessages.USER_NOT_FOUND_AUTH)
    if not user.is_active:
        raise_unauthorized(ErrorMessages.USER_INACTIVE)
    # Read back by the exception handlers for error analytics
    request.state.user_id = user.id
    return user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Require the current user to hold the ADMIN role.

    Raises:
        HTTPException: 403 if the user is not an administrator
    """
    if not current_user.is_admin:
        raise_forbidden(ErrorMessages.ADMIN_REQUIRED)
    return current_user
