"""
One-time code registry.

Admins generate batches of short single-use codes bound to a test type;
a user redeems a code to receive ONE_TIME access to that test type.

Redemption is safe under concurrency: the code row is read FOR UPDATE and
then consumed with a conditional UPDATE (``used_by IS NULL AND is_active``)
whose row count must be 1. The consumption and the entitlement grant share
the caller's transaction.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.orm import Session

from skillgate.core import entitlements
from skillgate.core.audit import (
    CodeDeactivatedDetails,
    CodeDeletedDetails,
    CodesCreatedDetails,
    record_admin_action,
)
from skillgate.core.config import settings
from skillgate.core.datetime_utils import ensure_timezone_aware, utc_now
from skillgate.core.error_responses import ErrorMessages
from skillgate.core.errors import (
    ErrorKind,
    ExhaustionError,
    NotFoundError,
    StateConflictError,
    ValidationFailedError,
)
from skillgate.core.test_types import get_test_type_or_404
from skillgate.models import (
    AccessLevel,
    Entitlement,
    GrantSource,
    OneTimeCode,
    TestSession,
    TestType,
)

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_USED = "used"
STATUS_EXPIRED = "expired"
STATUS_INACTIVE = "inactive"


@dataclass
class Redemption:
    """Result of a successful redemption."""

    code: OneTimeCode
    test_type: TestType
    entitlement: Entitlement


@dataclass
class CodeStats:
    total: int
    active: int
    used: int
    expired: int
    inactive: int
    # Test sessions that spent a grant obtained from one of these codes
    total_usage: int


def normalize_code(code: str) -> str:
    """Codes are matched case-insensitively, ignoring surrounding whitespace."""
    return code.strip().upper()


def is_expired(code: OneTimeCode, now: Optional[datetime] = None) -> bool:
    if code.expires_at is None:
        return False
    return ensure_timezone_aware(code.expires_at) <= (now or utc_now())


def code_status(code: OneTimeCode, now: Optional[datetime] = None) -> str:
    """Display status: used, inactive, expired or active."""
    if code.used_by is not None:
        return STATUS_USED
    if not code.is_active:
        return STATUS_INACTIVE
    if is_expired(code, now):
        return STATUS_EXPIRED
    return STATUS_ACTIVE


def _random_code() -> str:
    alphabet = settings.ONE_TIME_CODE_ALPHABET
    return "".join(
        secrets.choice(alphabet) for _ in range(settings.ONE_TIME_CODE_LENGTH)
    )


def _code_exists(db: Session, code: str) -> bool:
    return db.query(OneTimeCode.id).filter(OneTimeCode.code == code).first() is not None


def _generate_unique_code(db: Session, taken: Set[str]) -> str:
    """
    Draw codes until one is unused in the database and in this batch.

    Raises:
        ExhaustionError: After ONE_TIME_CODE_MAX_ATTEMPTS collisions
    """
    for _ in range(settings.ONE_TIME_CODE_MAX_ATTEMPTS):
        candidate = _random_code()
        if candidate in taken or _code_exists(db, candidate):
            continue
        taken.add(candidate)
        return candidate
    logger.error(
        f"Code generation exhausted {settings.ONE_TIME_CODE_MAX_ATTEMPTS} attempts"
    )
    raise ExhaustionError(ErrorMessages.CODE_GENERATION_EXHAUSTED)


def resolve_expiry(
    expires_at: Optional[datetime], expires_in_hours: Optional[int]
) -> Optional[datetime]:
    """
    Turn the two optional expiry inputs into one absolute timestamp.

    Raises:
        ValidationFailedError: Both given, hours out of range, or time in the past
    """
    if expires_at is not None and expires_in_hours is not None:
        raise ValidationFailedError(ErrorMessages.EXPIRY_CONFLICT)
    now = utc_now()
    if expires_in_hours is not None:
        maximum = settings.ONE_TIME_CODE_MAX_EXPIRY_HOURS
        if not 1 <= expires_in_hours <= maximum:
            raise ValidationFailedError(
                ErrorMessages.expiry_hours_out_of_range(maximum)
            )
        return now + timedelta(hours=expires_in_hours)
    if expires_at is not None:
        expires_at = ensure_timezone_aware(expires_at)
        if expires_at <= now:
            raise ValidationFailedError(ErrorMessages.EXPIRY_IN_PAST)
    return expires_at


def generate(
    db: Session,
    test_type_id: int,
    actor_id: int,
    count: int = 1,
    expires_at: Optional[datetime] = None,
    expires_in_hours: Optional[int] = None,
) -> List[OneTimeCode]:
    """
    Create a batch of codes for a test type.

    Every code is drawn before anything is added to the session, so running
    out of attempts on any slot leaves nothing behind.

    Raises:
        ValidationFailedError: count outside [1, ONE_TIME_CODE_MAX_BATCH] or bad expiry
        NotFoundError: Unknown or inactive test type
        ExhaustionError: Could not find a unique code for some slot
    """
    maximum = settings.ONE_TIME_CODE_MAX_BATCH
    if not 1 <= count <= maximum:
        raise ValidationFailedError(ErrorMessages.batch_size_out_of_range(maximum))
    expiry = resolve_expiry(expires_at, expires_in_hours)
    test_type = get_test_type_or_404(db, test_type_id)

    taken: Set[str] = set()
    values = [_generate_unique_code(db, taken) for _ in range(count)]

    records = [
        OneTimeCode(
            code=value,
            test_type_id=test_type.id,
            created_by=actor_id,
            expires_at=expiry,
            is_active=True,
        )
        for value in values
    ]
    db.add_all(records)
    db.flush()

    record_admin_action(
        db,
        actor_id,
        CodesCreatedDetails(
            test_type_id=test_type.id,
            count=len(records),
            codes=values,
            expires_at=expiry,
        ),
        target_id=test_type.id,
    )
    logger.info(
        f"Generated {len(records)} one-time codes for test type {test_type.name}"
    )
    return records


def redeem(db: Session, code: str, user_id: int) -> Redemption:
    """
    Consume a code and grant ONE_TIME access to its test type.

    Checks run in this order and reject without consuming anything:
    NOT_FOUND, ALREADY_USED (used or deactivated), EXPIRED, ALREADY_ENTITLED
    (user already holds ONE_TIME or UNLIMITED). A PRACTICE_ONLY holder is
    upgraded to ONE_TIME.

    Raises:
        NotFoundError, StateConflictError
    """
    normalized = normalize_code(code)
    record = (
        db.query(OneTimeCode)
        .filter(OneTimeCode.code == normalized)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if record is None:
        raise NotFoundError(ErrorMessages.CODE_NOT_FOUND)
    if record.used_by is not None or not record.is_active:
        raise StateConflictError(ErrorKind.ALREADY_USED, ErrorMessages.CODE_ALREADY_USED)
    now = utc_now()
    if is_expired(record, now):
        raise StateConflictError(ErrorKind.EXPIRED, ErrorMessages.CODE_EXPIRED)

    current = entitlements.get_active(db, user_id, record.test_type_id, for_update=True)
    if current is not None and current.access_level.allows_scored_test:
        raise StateConflictError(
            ErrorKind.ALREADY_ENTITLED, ErrorMessages.ALREADY_ENTITLED
        )

    result = db.execute(
        update(OneTimeCode)
        .where(
            OneTimeCode.id == record.id,
            OneTimeCode.used_by.is_(None),
            OneTimeCode.is_active.is_(True),
        )
        .values(used_by=user_id, used_at=now, is_active=False)
    )
    if result.rowcount != 1:
        logger.warning(f"Lost redemption race for code {record.id} (user {user_id})")
        raise StateConflictError(ErrorKind.ALREADY_USED, ErrorMessages.CODE_ALREADY_USED)

    # The redeeming user is the actor; the code itself records who issued it
    change = entitlements.set_level(
        db,
        user_id,
        record.test_type_id,
        AccessLevel.ONE_TIME,
        user_id,
        source=GrantSource.CODE,
        source_code_id=record.id,
    )
    logger.info(f"User {user_id} redeemed code {record.id}")
    return Redemption(
        code=record, test_type=record.test_type, entitlement=change.entitlement
    )


def _get_code_for_update(db: Session, code_id: int) -> OneTimeCode:
    record = (
        db.query(OneTimeCode)
        .filter(OneTimeCode.id == code_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if record is None:
        raise NotFoundError(ErrorMessages.CODE_RECORD_NOT_FOUND)
    return record


def deactivate(db: Session, code_id: int, actor_id: int) -> OneTimeCode:
    """
    Withdraw an unused code.

    Raises:
        NotFoundError: Unknown code
        StateConflictError: ALREADY_USED or ALREADY_INACTIVE
    """
    record = _get_code_for_update(db, code_id)
    if record.used_by is not None:
        raise StateConflictError(
            ErrorKind.ALREADY_USED, ErrorMessages.CODE_USED_CANNOT_DEACTIVATE
        )
    if not record.is_active:
        raise StateConflictError(
            ErrorKind.ALREADY_INACTIVE, ErrorMessages.CODE_ALREADY_INACTIVE
        )

    record.is_active = False
    record_admin_action(
        db,
        actor_id,
        CodeDeactivatedDetails(code=record.code, test_type_id=record.test_type_id),
        target_id=record.id,
    )
    db.flush()
    return record


def delete(db: Session, code_id: int, actor_id: int) -> None:
    """
    Hard-delete a code that was never used nor linked to a test session.

    Raises:
        NotFoundError: Unknown code
        StateConflictError: CODE_IN_USE
    """
    record = _get_code_for_update(db, code_id)
    attached = (
        db.query(TestSession.id).filter(TestSession.one_time_code_id == record.id).first()
    )
    if record.used_by is not None or attached is not None:
        raise StateConflictError(
            ErrorKind.CODE_IN_USE, ErrorMessages.CODE_IN_USE_CANNOT_DELETE
        )

    record_admin_action(
        db,
        actor_id,
        CodeDeletedDetails(code=record.code, test_type_id=record.test_type_id),
        target_id=record.id,
    )
    db.delete(record)
    db.flush()


def list_codes(
    db: Session,
    test_type_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[OneTimeCode]:
    """Codes newest first, optionally filtered by test type and display status."""
    query = db.query(OneTimeCode)
    if test_type_id is not None:
        query = query.filter(OneTimeCode.test_type_id == test_type_id)
    codes = query.order_by(OneTimeCode.created_at.desc(), OneTimeCode.id.desc()).all()
    if status is not None:
        now = utc_now()
        codes = [code for code in codes if code_status(code, now) == status]
    return codes


def code_stats(db: Session, codes: List[OneTimeCode]) -> CodeStats:
    now = utc_now()
    counts: Dict[str, int] = {
        STATUS_ACTIVE: 0,
        STATUS_USED: 0,
        STATUS_EXPIRED: 0,
        STATUS_INACTIVE: 0,
    }
    for code in codes:
        counts[code_status(code, now)] += 1

    code_ids = [code.id for code in codes]
    total_usage = 0
    if code_ids:
        total_usage = (
            db.query(TestSession)
            .filter(TestSession.one_time_code_id.in_(code_ids))
            .count()
        )

    return CodeStats(
        total=len(codes),
        active=counts[STATUS_ACTIVE],
        used=counts[STATUS_USED],
        expired=counts[STATUS_EXPIRED],
        inactive=counts[STATUS_INACTIVE],
        total_usage=total_usage,
    )
