"""
Pytest configuration and shared fixtures for testing.
"""
import os
import sys
from pathlib import Path

# Add project root to path so skillgate/ is importable without installing
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# SQLite test database; the path is relative to this file so the .db lands
# inside tests/ regardless of the working directory.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SENTRY_DSN", "")
os.environ["DATABASE_URL"] = SQLALCHEMY_DATABASE_URL

from contextlib import asynccontextmanager  # noqa: E402
from typing import Callable, Dict  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from skillgate.core import entitlements  # noqa: E402
from skillgate.core.content import (  # noqa: E402
    PassageBankProvider,
    set_content_provider,
)
from skillgate.core.security import create_access_token  # noqa: E402
from skillgate.core.test_types import (  # noqa: E402
    BASIC_ENGLISH,
    BASIC_MATH,
    DIGITAL_LITERACY,
    TYPING_10KEY,
    TYPING_KEYBOARD,
)
from skillgate.main import app  # noqa: E402
from skillgate.models import (  # noqa: E402
    AccessLevel,
    Base,
    TestType,
    TypingPassage,
    User,
    UserRole,
    get_db,
)


@asynccontextmanager
async def _test_lifespan(app):
    """No-op lifespan for tests.

    Skips Sentry initialization.
    """
    yield


# Neutralize the production lifespan on the singleton app.
app.router.lifespan_context = _test_lifespan


def create_test_application():
    """Create the production app with the lifespan disabled.

    Use this instead of ``create_application()`` from ``skillgate.main`` when
    tests need a fresh app instance (for example to register extra routes).
    """
    from skillgate.main import create_application

    test_app = create_application()
    test_app.router.lifespan_context = _test_lifespan
    return test_app


engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

KEYBOARD_PASSAGE = "the quick brown fox jumps over the lazy dog"
TEN_KEY_PASSAGE = "4728 1934 5581 9023 6617"


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    # Create all tables
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        set_content_provider(PassageBankProvider())
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database dependency override.

    Each request gets its own session on the same test.db file where
    db_session creates data.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def second_session(db_session):
    """
    An independent session on the same database, standing in for a
    concurrent request.
    """
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _create_user(db_session, email: str, role: UserRole = UserRole.USER) -> User:
    user = User(
        email=email,
        first_name=email.split("@")[0].capitalize(),
        last_name="Tester",
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_user(db_session):
    """
    Create a test user in the database.
    """
    return _create_user(db_session, "test@example.com")


@pytest.fixture
def other_user(db_session):
    """A second regular user."""
    return _create_user(db_session, "other@example.com")


@pytest.fixture
def admin_user(db_session):
    """An administrator."""
    return _create_user(db_session, "admin@example.com", role=UserRole.ADMIN)


def _bearer(user: User) -> Dict[str, str]:
    access_token = create_access_token({"user_id": user.id})
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def auth_headers(test_user):
    """
    Create authentication headers for test user.
    """
    return _bearer(test_user)


@pytest.fixture
def other_auth_headers(other_user):
    return _bearer(other_user)


@pytest.fixture
def admin_headers(admin_user):
    """
    Create authentication headers for the admin user.
    """
    return _bearer(admin_user)


@pytest.fixture
def test_types(db_session) -> Dict[str, TestType]:
    """
    Seed the five known test types, keyed by name.
    """
    seeded = {
        name: TestType(name=name, display_name=display_name, is_active=True)
        for name, display_name in [
            (TYPING_KEYBOARD, "Keyboard Typing"),
            (TYPING_10KEY, "10-Key Typing"),
            (DIGITAL_LITERACY, "Digital Literacy"),
            (BASIC_MATH, "Basic Math"),
            (BASIC_ENGLISH, "Basic English"),
        ]
    }
    db_session.add_all(seeded.values())
    db_session.commit()
    for test_type in seeded.values():
        db_session.refresh(test_type)
    return seeded


@pytest.fixture
def typing_passages(db_session, test_types) -> Dict[str, TypingPassage]:
    """
    One active passage per typing test type, keyed by test type name.
    """
    passages = {
        TYPING_KEYBOARD: TypingPassage(
            test_type_id=test_types[TYPING_KEYBOARD].id,
            text=KEYBOARD_PASSAGE,
            is_active=True,
        ),
        TYPING_10KEY: TypingPassage(
            test_type_id=test_types[TYPING_10KEY].id,
            text=TEN_KEY_PASSAGE,
            is_active=True,
        ),
    }
    db_session.add_all(passages.values())
    db_session.commit()
    for passage in passages.values():
        db_session.refresh(passage)
    return passages


@pytest.fixture
def grant_access(db_session, admin_user) -> Callable[[User, TestType, AccessLevel], None]:
    """
    Helper fixture that sets a user's access level for a test type and
    commits, the way an admin grant would.
    """

    def _grant(user: User, test_type: TestType, level: AccessLevel) -> None:
        entitlements.set_level(db_session, user.id, test_type.id, level, admin_user.id)
        db_session.commit()

    return _grant
