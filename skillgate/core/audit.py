"""
Admin audit log.

Each admin mutation appends one AdminAction row in the same transaction as
the change it records. The ``details`` column holds one variant of
``AuditDetails``, tagged by ``kind``, so every action kind has a fixed schema.
"""
import logging
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from sqlalchemy.orm import Session

from skillgate.models import AccessLevel, AdminAction, AdminActionType

logger = logging.getLogger(__name__)


class CodesCreatedDetails(BaseModel):
    kind: Literal["codes_created"] = "codes_created"
    test_type_id: int
    count: int
    codes: List[str]
    expires_at: Optional[datetime] = None


class CodeDeactivatedDetails(BaseModel):
    kind: Literal["code_deactivated"] = "code_deactivated"
    code: str
    test_type_id: int


class CodeDeletedDetails(BaseModel):
    kind: Literal["code_deleted"] = "code_deleted"
    code: str
    test_type_id: int


class AccessGrantedDetails(BaseModel):
    """Request approval."""

    kind: Literal["access_granted"] = "access_granted"
    request_id: int
    user_id: int
    test_type_id: int
    access_level: AccessLevel
    response: Optional[str] = None


class RequestDeniedDetails(BaseModel):
    kind: Literal["request_denied"] = "request_denied"
    request_id: int
    user_id: int
    test_type_id: int
    reason: Optional[str] = None


class AccessSetDetails(BaseModel):
    """Direct admin grant, revoke, or toggle."""

    kind: Literal["access_set"] = "access_set"
    user_id: int
    test_type_id: int
    previous_level: AccessLevel
    new_level: AccessLevel
    is_active: bool = True
    approved_request_ids: List[int] = Field(default_factory=list)


class TestCancelledDetails(BaseModel):
    kind: Literal["test_cancelled"] = "test_cancelled"
    user_id: int
    test_type_id: int
    previous_status: str
    reason: str


class TestDeletedDetails(BaseModel):
    kind: Literal["test_deleted"] = "test_deleted"
    user_id: int
    test_type_id: int
    status: str
    had_result: bool


AuditDetails = Annotated[
    Union[
        CodesCreatedDetails,
        CodeDeactivatedDetails,
        CodeDeletedDetails,
        AccessGrantedDetails,
        RequestDeniedDetails,
        AccessSetDetails,
        TestCancelledDetails,
        TestDeletedDetails,
    ],
    Field(discriminator="kind"),
]

_details_adapter: TypeAdapter[AuditDetails] = TypeAdapter(AuditDetails)


def parse_details(raw: dict) -> AuditDetails:
    """Validate a stored details payload back into its typed variant."""
    return _details_adapter.validate_python(raw)


def record_admin_action(
    db: Session,
    actor_id: int,
    details: AuditDetails,
    target_id: Optional[int] = None,
) -> AdminAction:
    """
    Append an audit entry to the current transaction.

    The action kind is taken from the details variant, so the two can never
    disagree.
    """
    action = AdminAction(
        actor_id=actor_id,
        action=AdminActionType(details.kind),
        target_id=target_id,
        details=details.model_dump(mode="json"),
    )
    db.add(action)
    logger.info(
        f"Admin action {details.kind} by user {actor_id} on target {target_id}"
    )
    return action


def list_admin_actions(
    db: Session,
    action: Optional[AdminActionType] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[AdminAction]:
    """Audit entries, newest first."""
    query = db.query(AdminAction)
    if action is not None:
        query = query.filter(AdminAction.action == action)
    return (
        query.order_by(AdminAction.created_at.desc(), AdminAction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
