"""
Entitlement store.

One row per (user, test type) holding the current access level and where it
came from. A missing row means NONE; setting NONE deletes the row so "no
access" has exactly one representation.

Every path that changes access (admin grant or toggle, request approval,
code redemption, spending a one-time grant) goes through ``set_level`` or
``downgrade_if_one_time``. Functions here flush but never commit.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from skillgate.core.datetime_utils import utc_now
from skillgate.models import (
    AccessLevel,
    Entitlement,
    GrantSource,
    RequestStatus,
    TestRequest,
)

logger = logging.getLogger(__name__)

# Level granted by the toggle when the user has no access yet
DEFAULT_TOGGLE_LEVEL = AccessLevel.UNLIMITED


@dataclass
class LevelChange:
    """Outcome of set_level."""

    previous_level: AccessLevel
    entitlement: Optional[Entitlement]
    approved_request_ids: List[int] = field(default_factory=list)

    @property
    def new_level(self) -> AccessLevel:
        if self.entitlement is None:
            return AccessLevel.NONE
        return self.entitlement.access_level

    @property
    def is_active(self) -> bool:
        return self.entitlement is not None and self.entitlement.is_active


def get(
    db: Session, user_id: int, test_type_id: int, *, for_update: bool = False
) -> Optional[Entitlement]:
    """
    Fetch the entitlement row for a pair, if any.

    With ``for_update`` the row is locked for the rest of the transaction and
    re-read from the database even if it is already in the session.
    """
    query = db.query(Entitlement).filter(
        Entitlement.user_id == user_id,
        Entitlement.test_type_id == test_type_id,
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


def get_active(
    db: Session, user_id: int, test_type_id: int, *, for_update: bool = False
) -> Optional[Entitlement]:
    """Like ``get`` but ignores administratively suspended rows."""
    entitlement = get(db, user_id, test_type_id, for_update=for_update)
    if entitlement is None or not entitlement.is_active:
        return None
    return entitlement


def current_level(db: Session, user_id: int, test_type_id: int) -> AccessLevel:
    entitlement = get_active(db, user_id, test_type_id)
    return entitlement.access_level if entitlement else AccessLevel.NONE


def list_for_user(db: Session, user_id: int) -> List[Entitlement]:
    return (
        db.query(Entitlement)
        .filter(Entitlement.user_id == user_id)
        .order_by(Entitlement.test_type_id)
        .all()
    )


def set_level(
    db: Session,
    user_id: int,
    test_type_id: int,
    level: AccessLevel,
    actor_id: Optional[int],
    *,
    source: GrantSource = GrantSource.ADMIN,
    source_code_id: Optional[int] = None,
    is_active: bool = True,
) -> LevelChange:
    """
    Idempotent upsert of a pair's access level.

    NONE removes the row. Any other level is written as given (not merged
    with the previous level) and approves every PENDING request for the pair
    with ``reviewed_by = actor_id``. With ``is_active=False`` the level is
    stored suspended: it grants nothing and approves nothing until a later
    call reactivates it.

    Args:
        db: Database session (not committed)
        user_id: User receiving the level
        test_type_id: Test type the level applies to
        level: New access level
        actor_id: Who granted it (admin, approving admin, or redeeming user)
        source: Provenance of the grant
        source_code_id: Redeemed code, when source is CODE
        is_active: False to store the level suspended

    Returns:
        LevelChange with the previous level and the stored row (None for NONE)
    """
    existing = get(db, user_id, test_type_id, for_update=True)
    previous = (
        existing.access_level
        if existing is not None and existing.is_active
        else AccessLevel.NONE
    )

    if level == AccessLevel.NONE:
        if existing is not None:
            db.delete(existing)
            db.flush()
            logger.info(
                f"Entitlement removed for user {user_id}, test type {test_type_id} "
                f"(was {previous.value})"
            )
        return LevelChange(previous_level=previous, entitlement=None)

    now = utc_now()
    if existing is None:
        existing = Entitlement(user_id=user_id, test_type_id=test_type_id)
        db.add(existing)
    existing.access_level = level
    existing.is_active = is_active
    existing.granted_by = actor_id
    existing.granted_at = now
    existing.source = source
    existing.source_code_id = source_code_id if source == GrantSource.CODE else None

    approved = []
    if is_active:
        approved = _approve_pending_requests(db, user_id, test_type_id, actor_id, now)
    db.flush()

    logger.info(
        f"Entitlement for user {user_id}, test type {test_type_id}: "
        f"{previous.value} -> {level.value} ({source.value}"
        f"{'' if is_active else ', suspended'})"
    )
    return LevelChange(
        previous_level=previous, entitlement=existing, approved_request_ids=approved
    )


def toggle(
    db: Session, user_id: int, test_type_id: int, grant: bool, actor_id: int
) -> LevelChange:
    """
    Grant or revoke access with a single flag.

    Granting keeps the stored level, reactivating it if it was suspended,
    or falls back to DEFAULT_TOGGLE_LEVEL when there is no row; revoking
    sets NONE.
    """
    if not grant:
        return set_level(db, user_id, test_type_id, AccessLevel.NONE, actor_id)
    existing = get(db, user_id, test_type_id)
    level = existing.access_level if existing is not None else DEFAULT_TOGGLE_LEVEL
    return set_level(db, user_id, test_type_id, level, actor_id)


def downgrade_if_one_time(db: Session, user_id: int, test_type_id: int) -> bool:
    """
    Spend a ONE_TIME grant.

    Deletes the pair's row only if it is still ONE_TIME. The database decides
    the winner: of any number of concurrent callers exactly one sees a
    deleted row.

    Returns:
        True if this call consumed the grant
    """
    result = db.execute(
        delete(Entitlement).where(
            Entitlement.user_id == user_id,
            Entitlement.test_type_id == test_type_id,
            Entitlement.access_level == AccessLevel.ONE_TIME,
        )
    )
    consumed = result.rowcount == 1
    if consumed:
        logger.info(
            f"One-time grant consumed for user {user_id}, test type {test_type_id}"
        )
    return consumed


def _approve_pending_requests(
    db: Session,
    user_id: int,
    test_type_id: int,
    actor_id: Optional[int],
    reviewed_at,
) -> List[int]:
    pending = (
        db.query(TestRequest)
        .filter(
            TestRequest.user_id == user_id,
            TestRequest.test_type_id == test_type_id,
            TestRequest.status == RequestStatus.PENDING,
        )
        .all()
    )
    for request in pending:
        request.status = RequestStatus.APPROVED
        request.reviewed_by = actor_id
        request.reviewed_at = reviewed_at
    return [request.id for request in pending]
