"""
Test session endpoints for the session owner.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillgate.core import test_lifecycle
from skillgate.core.analytics import AnalyticsTracker, EventType
from skillgate.core.auth import get_current_user
from skillgate.core.db_error_handling import unit_of_work
from skillgate.core.graceful_failure import graceful_failure
from skillgate.core.session_state import SessionState
from skillgate.models import TestSession, User, get_db
from skillgate.schemas.test_sessions import (
    CompleteTestRequest,
    CompleteTestResponse,
    ProgressRequest,
    ProgressResponse,
    StartTestRequest,
    StartTestResponse,
    TestHistoryResponse,
    TestResultResponse,
    TestSessionDetailResponse,
    TestSessionResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def build_session_detail(test_session: TestSession) -> TestSessionDetailResponse:
    """Session plus its working state and clock."""
    state = SessionState.load(test_session.session_state)
    return TestSessionDetailResponse(
        session=TestSessionResponse.model_validate(test_session),
        expected_text=state.expected_text,
        typed_text=state.typed_text,
        cursor_position=state.cursor_position,
        statistics=state.statistics,
        active_seconds=round(test_lifecycle.active_elapsed_seconds(test_session), 3),
        remaining_seconds=test_lifecycle.remaining_seconds(test_session),
    )


@router.post("/start", response_model=StartTestResponse)
def start_test(
    body: StartTestRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Start a test session.

    Scored sessions require ONE_TIME or UNLIMITED access (403 ACCESS_DENIED)
    and fail with 409 ALREADY_ACTIVE, carrying ``session_id``, when a scored
    session for the same test type is still running. Starting a scored
    session spends a ONE_TIME grant.
    """
    with unit_of_work(db, "start test session"):
        test_session = test_lifecycle.start(
            db, current_user.id, body.test_type_id, body.is_practice
        )
        state = SessionState.load(test_session.session_state)
        test_type_name = test_session.test_type.name
        response = StartTestResponse(
            session=TestSessionResponse.model_validate(test_session),
            session_id=test_session.id,
            time_limit=test_session.time_limit,
            expected_text=state.expected_text,
            scoring_mode=state.scoring_mode.value,
        )

    with graceful_failure("track test start", logger):
        AnalyticsTracker.track_test_started(
            user_id=current_user.id,
            session_id=response.session_id,
            test_type=test_type_name,
            is_practice=body.is_practice,
        )
    return response


@router.get("/active", response_model=TestSessionDetailResponse | None)
def get_active_test(
    test_type_id: int = Query(..., description="Test type to look up"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The user's running scored session for a test type, or null."""
    test_session = test_lifecycle.get_active_session(db, current_user.id, test_type_id)
    if test_session is None:
        return None
    return build_session_detail(test_session)


@router.get("/history", response_model=TestHistoryResponse)
def get_test_history(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Results of the user's completed scored sessions, newest first."""
    results = test_lifecycle.list_results_for_user(db, current_user.id)
    return TestHistoryResponse(
        results=[TestResultResponse.model_validate(r) for r in results],
        count=len(results),
    )


@router.get("/{session_id}", response_model=TestSessionDetailResponse)
def get_test_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """A session owned by the current user."""
    test_session = test_lifecycle.get_owned_session(db, session_id, current_user.id)
    return build_session_detail(test_session)


@router.post("/{session_id}/progress", response_model=ProgressResponse)
def record_progress(
    session_id: int,
    body: ProgressRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Report the text typed so far and get running statistics back.

    Only STARTED sessions accept progress (409 NOT_ACTIVE otherwise).
    """
    with unit_of_work(db, "record test progress", log_level=logging.WARNING):
        statistics = test_lifecycle.record_progress(
            db,
            session_id,
            current_user.id,
            body.typed_text,
            body.cursor_position,
            body.keystroke,
        )
        test_session = test_lifecycle.get_session_or_404(db, session_id)
        response = ProgressResponse(
            session_id=session_id,
            statistics=statistics,
            remaining_seconds=test_lifecycle.remaining_seconds(test_session),
        )
    return response


@router.post("/{session_id}/pause", response_model=TestSessionDetailResponse)
def pause_test(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Pause a STARTED session; paused time does not count as elapsed."""
    with unit_of_work(db, "pause test session"):
        test_session = test_lifecycle.pause(db, session_id, current_user.id)
        response = build_session_detail(test_session)

    with graceful_failure("track test pause", logger):
        AnalyticsTracker.track_event(
            EventType.TEST_PAUSED,
            user_id=current_user.id,
            properties={"session_id": session_id},
        )
    return response


@router.post("/{session_id}/resume", response_model=TestSessionDetailResponse)
def resume_test(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Resume a PAUSED session (409 INVALID_STATE otherwise)."""
    with unit_of_work(db, "resume test session"):
        test_session = test_lifecycle.resume(db, session_id, current_user.id)
        response = build_session_detail(test_session)

    with graceful_failure("track test resume", logger):
        AnalyticsTracker.track_event(
            EventType.TEST_RESUMED,
            user_id=current_user.id,
            properties={"session_id": session_id},
        )
    return response


@router.post("/{session_id}/complete", response_model=CompleteTestResponse)
def complete_test(
    session_id: int,
    body: CompleteTestRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Finish a STARTED session and score it.

    Scored sessions produce a TestResult. Completing twice fails with
    409 NOT_ACTIVE.
    """
    with unit_of_work(db, "complete test session"):
        outcome = test_lifecycle.complete(
            db,
            session_id,
            current_user.id,
            body.final_typed_text,
            body.elapsed_seconds,
        )
        response = CompleteTestResponse(
            session=TestSessionResponse.model_validate(outcome.session),
            statistics=outcome.metrics.to_dict(),
            result=(
                TestResultResponse.model_validate(outcome.result)
                if outcome.result is not None
                else None
            ),
        )

    with graceful_failure("track test completion", logger):
        AnalyticsTracker.track_test_completed(
            user_id=current_user.id,
            session_id=session_id,
            weighted_speed=outcome.metrics.weighted_speed,
            accuracy=outcome.metrics.accuracy,
            is_practice=response.session.is_practice,
        )
    return response
