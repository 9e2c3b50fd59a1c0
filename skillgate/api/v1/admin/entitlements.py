"""
Direct entitlement management endpoints.

Admins can set a user's access level for a test type outright, or flip it
on and off with a single flag. Both paths approve any pending request for
the pair and are recorded in the audit log.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from skillgate.core import entitlements
from skillgate.core.analytics import AnalyticsTracker, EventType
from skillgate.core.audit import AccessSetDetails, record_admin_action
from skillgate.core.db_error_handling import unit_of_work
from skillgate.core.error_responses import ErrorMessages
from skillgate.core.errors import NotFoundError
from skillgate.core.graceful_failure import graceful_failure
from skillgate.core.test_types import get_test_type_or_404
from skillgate.models import User, get_db
from skillgate.schemas.entitlements import (
    AccessChangeResponse,
    EntitlementResponse,
    SetAccessRequest,
    ToggleAccessRequest,
)

from ._dependencies import get_current_admin, logger

router = APIRouter()


def _require_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError(ErrorMessages.USER_NOT_FOUND)
    return user


def _record_change(
    db: Session,
    admin: User,
    user_id: int,
    test_type_id: int,
    change: entitlements.LevelChange,
) -> AccessChangeResponse:
    record_admin_action(
        db,
        admin.id,
        AccessSetDetails(
            user_id=user_id,
            test_type_id=test_type_id,
            previous_level=change.previous_level,
            new_level=change.new_level,
            is_active=change.is_active,
            approved_request_ids=change.approved_request_ids,
        ),
        target_id=user_id,
    )
    db.flush()
    return AccessChangeResponse(
        user_id=user_id,
        test_type_id=test_type_id,
        previous_level=change.previous_level,
        access_level=change.new_level,
        is_active=change.is_active,
        approved_request_ids=change.approved_request_ids,
    )


def _track_change(admin: User, response: AccessChangeResponse) -> None:
    with graceful_failure("track entitlement change", logger):
        AnalyticsTracker.track_event(
            EventType.ENTITLEMENT_SET,
            user_id=admin.id,
            properties={
                "target_user_id": response.user_id,
                "test_type_id": response.test_type_id,
                "previous_level": response.previous_level.value,
                "access_level": response.access_level.value,
                "is_active": response.is_active,
            },
        )


@router.get("/users/{user_id}/entitlements", response_model=List[EntitlementResponse])
def list_user_entitlements(
    user_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """A user's stored entitlements."""
    _require_user(db, user_id)
    return [
        EntitlementResponse.model_validate(e)
        for e in entitlements.list_for_user(db, user_id)
    ]


@router.post("/users/{user_id}/entitlements", response_model=AccessChangeResponse)
def set_user_access(
    user_id: int,
    body: SetAccessRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Set a user's access level for a test type.

    The level is written as given; NONE removes the entitlement. Setting any
    other active level approves the user's pending requests for that test
    type. With is_active=false the level is kept but suspended until a
    toggle or another set reactivates it.
    """
    with unit_of_work(db, "set user access"):
        _require_user(db, user_id)
        test_type = get_test_type_or_404(db, body.test_type_id, require_active=False)
        change = entitlements.set_level(
            db,
            user_id,
            test_type.id,
            body.access_level,
            admin.id,
            is_active=body.is_active,
        )
        response = _record_change(db, admin, user_id, test_type.id, change)

    _track_change(admin, response)
    return response


@router.post(
    "/users/{user_id}/entitlements/toggle", response_model=AccessChangeResponse
)
def toggle_user_access(
    user_id: int,
    body: ToggleAccessRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Grant or revoke access with a single flag.

    Granting keeps the user's stored level (reactivating a suspended one),
    or grants UNLIMITED when they have none. Revoking removes the entitlement.
    """
    with unit_of_work(db, "toggle user access"):
        _require_user(db, user_id)
        test_type = get_test_type_or_404(db, body.test_type_id, require_active=False)
        change = entitlements.toggle(db, user_id, test_type.id, body.grant, admin.id)
        response = _record_change(db, admin, user_id, test_type.id, change)

    _track_change(admin, response)
    return response
