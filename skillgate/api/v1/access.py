"""
User-facing access endpoints: code redemption, access requests, and the
user's own entitlements.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from skillgate.core import entitlements, one_time_codes, test_requests
from skillgate.core.analytics import AnalyticsTracker, EventType
from skillgate.core.auth import get_current_user
from skillgate.core.db_error_handling import unit_of_work
from skillgate.core.graceful_failure import graceful_failure
from skillgate.models import User, get_db
from skillgate.schemas.entitlements import EntitlementResponse
from skillgate.schemas.one_time_codes import RedeemCodeRequest, RedeemCodeResponse
from skillgate.schemas.test_requests import (
    SubmitRequestsRequest,
    SubmitRequestsResponse,
    TestRequestResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/redeem", response_model=RedeemCodeResponse)
def redeem_code(
    body: RedeemCodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Redeem a one-time code for ONE_TIME access to its test type.

    Failures: NOT_FOUND (404), ALREADY_USED / EXPIRED / ALREADY_ENTITLED (409).
    """
    with unit_of_work(db, "redeem one-time code"):
        redemption = one_time_codes.redeem(db, body.code, current_user.id)
        response = RedeemCodeResponse(
            test_type_id=redemption.test_type.id,
            test_type_name=redemption.test_type.name,
            test_type_display_name=redemption.test_type.display_name,
            access_level=redemption.entitlement.access_level,
            message=f"Access granted to {redemption.test_type.display_name}.",
        )

    with graceful_failure("track code redemption", logger):
        AnalyticsTracker.track_event(
            EventType.CODE_REDEEMED,
            user_id=current_user.id,
            properties={"test_type_id": response.test_type_id},
        )
    return response


@router.post("/requests", response_model=SubmitRequestsResponse)
def submit_access_request(
    body: SubmitRequestsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Ask an admin for access to one or more test types.

    Types the user already has access to, or has a pending request for, are
    skipped; if nothing remains the call fails with NO_ELIGIBLE_TYPES.
    """
    with unit_of_work(db, "submit access request"):
        created = test_requests.submit(
            db, current_user.id, body.test_type_ids, body.reason
        )
        response = SubmitRequestsResponse(
            created=len(created),
            requests=[TestRequestResponse.model_validate(r) for r in created],
        )

    with graceful_failure("track access request", logger):
        AnalyticsTracker.track_event(
            EventType.ACCESS_REQUESTED,
            user_id=current_user.id,
            properties={"test_type_ids": [r.test_type_id for r in response.requests]},
        )
    return response


@router.get("/requests", response_model=List[TestRequestResponse])
def list_my_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The current user's access requests, newest first."""
    return [
        TestRequestResponse.model_validate(r)
        for r in test_requests.list_requests(db, user_id=current_user.id)
    ]


@router.get("/entitlements", response_model=List[EntitlementResponse])
def list_my_entitlements(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The current user's entitlements. Test types not listed are NONE."""
    return [
        EntitlementResponse.model_validate(e)
        for e in entitlements.list_for_user(db, current_user.id)
    ]
