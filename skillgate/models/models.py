"""
Database models for the entitlement and test session engine.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    Enum,
    Float,
    UniqueConstraint,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSON
from datetime import datetime, timezone
import enum

from .base import Base


class UserRole(str, enum.Enum):
    """Role of an authenticated actor."""

    USER = "USER"
    ADMIN = "ADMIN"


class AccessLevel(str, enum.Enum):
    """Entitlement level for a (user, test type) pair, lowest first."""

    NONE = "NONE"
    PRACTICE_ONLY = "PRACTICE_ONLY"
    ONE_TIME = "ONE_TIME"
    UNLIMITED = "UNLIMITED"

    @property
    def rank(self) -> int:
        return _ACCESS_LEVEL_RANK[self]

    @property
    def allows_scored_test(self) -> bool:
        return self in (AccessLevel.ONE_TIME, AccessLevel.UNLIMITED)


_ACCESS_LEVEL_RANK = {
    AccessLevel.NONE: 0,
    AccessLevel.PRACTICE_ONLY: 1,
    AccessLevel.ONE_TIME: 2,
    AccessLevel.UNLIMITED: 3,
}


class GrantSource(str, enum.Enum):
    """How an entitlement was last granted."""

    ADMIN = "ADMIN"
    APPROVAL = "APPROVAL"
    CODE = "CODE"


class RequestStatus(str, enum.Enum):
    """Test access request status."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class TestStatus(str, enum.Enum):
    """Test session status enumeration."""

    STARTED = "STARTED"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def active(cls) -> tuple["TestStatus", ...]:
        return (cls.STARTED, cls.PAUSED)


class AdminActionType(str, enum.Enum):
    """Kinds of audited admin mutations."""

    CODES_CREATED = "codes_created"
    CODE_DEACTIVATED = "code_deactivated"
    CODE_DELETED = "code_deleted"
    ACCESS_GRANTED = "access_granted"
    REQUEST_DENIED = "request_denied"
    ACCESS_SET = "access_set"
    TEST_CANCELLED = "test_cancelled"
    TEST_DELETED = "test_deleted"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Actor known to the service. Credentials live with the identity provider."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    # Relationships
    entitlements = relationship(
        "Entitlement",
        back_populates="user",
        foreign_keys="Entitlement.user_id",
        cascade="all, delete-orphan",
    )
    test_sessions = relationship(
        "TestSession",
        back_populates="user",
        foreign_keys="TestSession.user_id",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class TestType(Base):
    """A kind of test users can take (typing-keyboard, basic-math, ...)."""

    __tablename__ = "test_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    passages = relationship(
        "TypingPassage", back_populates="test_type", cascade="all, delete-orphan"
    )


class TypingPassage(Base):
    """Passage text served to typing tests."""

    __tablename__ = "typing_passages"

    id = Column(Integer, primary_key=True, index=True)
    test_type_id = Column(
        Integer,
        ForeignKey("test_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    test_type = relationship("TestType", back_populates="passages")


class Entitlement(Base):
    """
    Current access level for one (user, test type) pair.

    Absence of a row means NONE; rows are never stored at NONE.
    """

    __tablename__ = "entitlements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    test_type_id = Column(
        Integer,
        ForeignKey("test_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_level = Column(Enum(AccessLevel), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    granted_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    granted_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    source = Column(Enum(GrantSource), nullable=False)
    # Code whose redemption produced the current grant
    source_code_id = Column(
        Integer, ForeignKey("one_time_codes.id", ondelete="SET NULL"), nullable=True
    )
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    user = relationship("User", back_populates="entitlements", foreign_keys=[user_id])
    test_type = relationship("TestType")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "test_type_id", name="uq_entitlements_user_test_type"
        ),
    )


class OneTimeCode(Base):
    """Single-use redemption code bound to a test type."""

    __tablename__ = "one_time_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, nullable=False, index=True)
    test_type_id = Column(
        Integer,
        ForeignKey("test_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    used_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    used_at = Column(DateTime(timezone=True), nullable=True)

    test_type = relationship("TestType")

    __table_args__ = (
        # A consumed code is never active again
        CheckConstraint(
            "used_by IS NULL OR NOT is_active", name="ck_one_time_codes_used_inactive"
        ),
        Index("ix_one_time_codes_test_type_active", "test_type_id", "is_active"),
    )


class TestRequest(Base):
    """A user's request for access to a test type, reviewed by an admin."""

    __tablename__ = "test_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    test_type_id = Column(
        Integer, ForeignKey("test_types.id", ondelete="CASCADE"), nullable=False
    )
    reason = Column(Text, nullable=False)
    status = Column(
        Enum(RequestStatus), default=RequestStatus.PENDING, nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    reviewed_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    response = Column(Text, nullable=True)

    test_type = relationship("TestType")

    __table_args__ = (
        Index("ix_test_requests_user_type_status", "user_id", "test_type_id", "status"),
    )


class TestSession(Base):
    """Test session model for tracking individual test attempts."""

    __tablename__ = "test_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_type_id = Column(
        Integer,
        ForeignKey("test_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_practice = Column(Boolean, default=False, nullable=False)
    status = Column(
        Enum(TestStatus), default=TestStatus.STARTED, nullable=False, index=True
    )
    time_limit = Column(Integer, nullable=True)  # seconds, None = untimed
    started_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    paused_at = Column(DateTime(timezone=True), nullable=True)
    resumed_at = Column(DateTime(timezone=True), nullable=True)
    # Running time accumulated before the most recent resume
    active_seconds = Column(Float, default=0.0, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    cancelled_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    score = Column(Integer, nullable=True)
    # Code whose ONE_TIME grant was spent on this session
    one_time_code_id = Column(
        Integer, ForeignKey("one_time_codes.id"), nullable=True, index=True
    )
    session_state = Column(JSON, nullable=False, default=dict)

    # Relationships
    user = relationship("User", back_populates="test_sessions", foreign_keys=[user_id])
    test_type = relationship("TestType")
    test_result = relationship(
        "TestResult",
        back_populates="test_session",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_test_sessions_user_status", "user_id", "status"),
        # At most one active scored session per user and test type
        Index(
            "ix_test_sessions_user_type_active",
            "user_id",
            "test_type_id",
            unique=True,
            sqlite_where=text("status IN ('STARTED', 'PAUSED') AND is_practice = 0"),
            postgresql_where=text(
                "status IN ('STARTED', 'PAUSED') AND is_practice = false"
            ),
        ),
    )


class TestResult(Base):
    """Immutable outcome of a completed scored session."""

    __tablename__ = "test_results"

    id = Column(Integer, primary_key=True, index=True)
    test_session_id = Column(
        Integer,
        ForeignKey("test_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_type_id = Column(
        Integer, ForeignKey("test_types.id", ondelete="CASCADE"), nullable=False
    )
    score = Column(Integer, nullable=False)
    accuracy = Column(Float, nullable=False)
    raw_speed = Column(Integer, nullable=False)
    weighted_speed = Column(Integer, nullable=False)
    time_to_complete = Column(Integer, nullable=True)  # seconds
    questions_total = Column(Integer, nullable=False)
    questions_correct = Column(Integer, nullable=False)
    detailed_results = Column(JSON, nullable=True)
    completed_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    test_session = relationship("TestSession", back_populates="test_result")
    test_type = relationship("TestType")

    __table_args__ = (
        Index("ix_test_results_user_completed", "user_id", "completed_at"),
    )


class AdminAction(Base):
    """Audit log entry for an admin mutation."""

    __tablename__ = "admin_actions"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    action = Column(Enum(AdminActionType), nullable=False, index=True)
    target_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=_utc_now, nullable=False, index=True
    )
