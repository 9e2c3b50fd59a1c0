"""
One-time code admin endpoints.

Endpoints for generating batches of single-use access codes, listing them
with usage statistics, and withdrawing codes that are no longer wanted.
"""
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillgate.core import one_time_codes
from skillgate.core.analytics import AnalyticsTracker, EventType
from skillgate.core.datetime_utils import utc_now
from skillgate.core.db_error_handling import unit_of_work
from skillgate.core.graceful_failure import graceful_failure
from skillgate.models import OneTimeCode, User, get_db
from skillgate.schemas.common import MessageResponse
from skillgate.schemas.one_time_codes import (
    CodeListResponse,
    CodeStatsResponse,
    GenerateCodesRequest,
    GenerateCodesResponse,
    OneTimeCodeResponse,
)

from ._dependencies import get_current_admin, logger

router = APIRouter()

CodeStatusFilter = Literal["active", "used", "expired", "inactive"]


def _code_response(code: OneTimeCode, now: datetime) -> OneTimeCodeResponse:
    return OneTimeCodeResponse(
        id=code.id,
        code=code.code,
        test_type_id=code.test_type_id,
        created_by=code.created_by,
        created_at=code.created_at,
        expires_at=code.expires_at,
        is_active=code.is_active,
        used_by=code.used_by,
        used_at=code.used_at,
        status=one_time_codes.code_status(code, now),
    )


@router.post("/one-time-codes", response_model=GenerateCodesResponse)
def generate_codes(
    body: GenerateCodesRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Generate a batch of one-time codes for a test type.

    Expiry is either absolute (``expires_at``) or relative
    (``expires_in_hours``), never both. Batch size must be within
    [1, ONE_TIME_CODE_MAX_BATCH].
    """
    with unit_of_work(db, "generate one-time codes"):
        codes = one_time_codes.generate(
            db,
            body.test_type_id,
            admin.id,
            count=body.count,
            expires_at=body.expires_at,
            expires_in_hours=body.expires_in_hours,
        )
        now = utc_now()
        response = GenerateCodesResponse(
            codes=[_code_response(code, now) for code in codes],
            count=len(codes),
        )

    with graceful_failure("track code generation", logger):
        AnalyticsTracker.track_event(
            EventType.CODES_GENERATED,
            user_id=admin.id,
            properties={"test_type_id": body.test_type_id, "count": response.count},
        )
    return response


@router.get("/one-time-codes", response_model=CodeListResponse)
def list_codes(
    test_type_id: Optional[int] = Query(None, description="Filter by test type"),
    status: Optional[CodeStatusFilter] = Query(
        None, description="Filter by display status"
    ),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """List codes newest first, with counts per status and total usage."""
    codes = one_time_codes.list_codes(db, test_type_id=test_type_id, status=status)
    stats = one_time_codes.code_stats(db, codes)
    now = utc_now()
    return CodeListResponse(
        codes=[_code_response(code, now) for code in codes],
        stats=CodeStatsResponse(
            total=stats.total,
            active=stats.active,
            used=stats.used,
            expired=stats.expired,
            inactive=stats.inactive,
            total_usage=stats.total_usage,
        ),
    )


@router.post(
    "/one-time-codes/{code_id}/deactivate", response_model=OneTimeCodeResponse
)
def deactivate_code(
    code_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Withdraw an unused, active code."""
    with unit_of_work(db, "deactivate one-time code"):
        code = one_time_codes.deactivate(db, code_id, admin.id)
        response = _code_response(code, utc_now())
    return response


@router.delete("/one-time-codes/{code_id}", response_model=MessageResponse)
def delete_code(
    code_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Hard-delete a code that was never used."""
    with unit_of_work(db, "delete one-time code"):
        one_time_codes.delete(db, code_id, admin.id)
    return MessageResponse(message=f"Code {code_id} deleted")
