"""
Test session oversight endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillgate.core import test_lifecycle
from skillgate.core.analytics import AnalyticsTracker, EventType
from skillgate.core.db_error_handling import unit_of_work
from skillgate.core.graceful_failure import graceful_failure
from skillgate.models import TestStatus, User, get_db
from skillgate.schemas.common import MessageResponse
from skillgate.schemas.test_sessions import (
    CancelTestRequest,
    TestSessionListResponse,
    TestSessionResponse,
)

from ._dependencies import get_current_admin, logger

router = APIRouter()


@router.get("/tests", response_model=TestSessionListResponse)
def list_test_sessions(
    status: Optional[TestStatus] = Query(None, description="Filter by status"),
    user_id: Optional[int] = Query(None, description="Filter by user"),
    test_type_id: Optional[int] = Query(None, description="Filter by test type"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """List sessions, newest first."""
    sessions = test_lifecycle.list_sessions(
        db,
        status=status,
        user_id=user_id,
        test_type_id=test_type_id,
        limit=limit,
        offset=offset,
    )
    return TestSessionListResponse(
        sessions=[TestSessionResponse.model_validate(s) for s in sessions],
        count=len(sessions),
    )


@router.post("/tests/{session_id}/cancel", response_model=TestSessionResponse)
def cancel_test_session(
    session_id: int,
    body: Optional[CancelTestRequest] = None,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Cancel a STARTED or PAUSED session.

    Terminal sessions fail with 409 INVALID_STATE. A spent ONE_TIME grant is
    not restored.
    """
    reason = body.reason if body else None
    with unit_of_work(db, "cancel test session"):
        test_session = test_lifecycle.cancel(db, session_id, admin.id, reason)
        response = TestSessionResponse.model_validate(test_session)

    with graceful_failure("track test cancellation", logger):
        AnalyticsTracker.track_event(
            EventType.TEST_CANCELLED,
            user_id=admin.id,
            properties={"session_id": session_id, "owner_id": response.user_id},
        )
    return response


@router.delete("/tests/{session_id}", response_model=MessageResponse)
def delete_test_session(
    session_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Hard-delete a session in any state, together with its result."""
    with unit_of_work(db, "delete test session"):
        test_lifecycle.admin_delete(db, session_id, admin.id)

    with graceful_failure("track test deletion", logger):
        AnalyticsTracker.track_event(
            EventType.TEST_DELETED,
            user_id=admin.id,
            properties={"session_id": session_id},
        )
    return MessageResponse(message=f"Test session {session_id} deleted")
