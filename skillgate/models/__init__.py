"""
Models package for the SkillGate backend.
"""
from .base import Base, engine, SessionLocal, get_db
from .models import (
    User,
    TestType,
    TypingPassage,
    Entitlement,
    OneTimeCode,
    TestRequest,
    TestSession,
    TestResult,
    AdminAction,
    UserRole,
    AccessLevel,
    GrantSource,
    RequestStatus,
    TestStatus,
    AdminActionType,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "User",
    "TestType",
    "TypingPassage",
    "Entitlement",
    "OneTimeCode",
    "TestRequest",
    "TestSession",
    "TestResult",
    "AdminAction",
    "UserRole",
    "AccessLevel",
    "GrantSource",
    "RequestStatus",
    "TestStatus",
    "AdminActionType",
]
