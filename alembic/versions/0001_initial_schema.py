"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 09:12:44.201735

Creates users, test types and passages, entitlements, one-time codes,
access requests, test sessions and results, and the admin audit log.
Seeds the five known test types.
"""
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("USER", "ADMIN", name="userrole")
access_level = sa.Enum(
    "NONE", "PRACTICE_ONLY", "ONE_TIME", "UNLIMITED", name="accesslevel"
)
grant_source = sa.Enum("ADMIN", "APPROVAL", "CODE", name="grantsource")
request_status = sa.Enum("PENDING", "APPROVED", "DENIED", name="requeststatus")
test_status = sa.Enum("STARTED", "PAUSED", "COMPLETED", "CANCELLED", name="teststatus")
# Enum columns store member names
admin_action_type = sa.Enum(
    "CODES_CREATED",
    "CODE_DEACTIVATED",
    "CODE_DELETED",
    "ACCESS_GRANTED",
    "REQUEST_DENIED",
    "ACCESS_SET",
    "TEST_CANCELLED",
    "TEST_DELETED",
    name="adminactiontype",
)

SEED_TEST_TYPES = [
    ("typing-keyboard", "Keyboard Typing", "Timed typing test scored in words per minute."),
    ("typing-10key", "10-Key Typing", "Numeric keypad test scored in keystrokes per hour."),
    ("digital-literacy", "Digital Literacy", "Timed questions on everyday computer skills."),
    ("basic-math", "Basic Math", "Arithmetic and workplace math questions."),
    ("basic-english", "Basic English", "Grammar, spelling and reading comprehension."),
]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "test_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_test_types_id"), "test_types", ["id"], unique=False)
    op.create_index(op.f("ix_test_types_name"), "test_types", ["name"], unique=True)

    op.create_table(
        "typing_passages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("test_type_id", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["test_type_id"], ["test_types.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_typing_passages_id"), "typing_passages", ["id"], unique=False)
    op.create_index(
        op.f("ix_typing_passages_test_type_id"),
        "typing_passages",
        ["test_type_id"],
        unique=False,
    )

    op.create_table(
        "one_time_codes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("test_type_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("used_by", sa.Integer(), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "used_by IS NULL OR NOT is_active", name="ck_one_time_codes_used_inactive"
        ),
        sa.ForeignKeyConstraint(["test_type_id"], ["test_types.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["used_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_one_time_codes_id"), "one_time_codes", ["id"], unique=False)
    op.create_index(op.f("ix_one_time_codes_code"), "one_time_codes", ["code"], unique=True)
    op.create_index(
        op.f("ix_one_time_codes_test_type_id"),
        "one_time_codes",
        ["test_type_id"],
        unique=False,
    )
    op.create_index(
        "ix_one_time_codes_test_type_active",
        "one_time_codes",
        ["test_type_id", "is_active"],
        unique=False,
    )

    op.create_table(
        "entitlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("test_type_id", sa.Integer(), nullable=False),
        sa.Column("access_level", access_level, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("granted_by", sa.Integer(), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", grant_source, nullable=False),
        sa.Column("source_code_id", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["test_type_id"], ["test_types.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["granted_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["source_code_id"], ["one_time_codes.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "test_type_id", name="uq_entitlements_user_test_type"
        ),
    )
    op.create_index(op.f("ix_entitlements_id"), "entitlements", ["id"], unique=False)
    op.create_index(
        op.f("ix_entitlements_test_type_id"),
        "entitlements",
        ["test_type_id"],
        unique=False,
    )

    op.create_table(
        "test_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("test_type_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", request_status, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["test_type_id"], ["test_types.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_test_requests_id"), "test_requests", ["id"], unique=False)
    op.create_index(
        op.f("ix_test_requests_status"), "test_requests", ["status"], unique=False
    )
    op.create_index(
        "ix_test_requests_user_type_status",
        "test_requests",
        ["user_id", "test_type_id", "status"],
        unique=False,
    )

    op.create_table(
        "test_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("test_type_id", sa.Integer(), nullable=False),
        sa.Column("is_practice", sa.Boolean(), nullable=False),
        sa.Column("status", test_status, nullable=False),
        sa.Column("time_limit", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active_seconds", sa.Float(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("one_time_code_id", sa.Integer(), nullable=True),
        sa.Column(
            "session_state", postgresql.JSON(astext_type=sa.Text()), nullable=False
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["test_type_id"], ["test_types.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["cancelled_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["one_time_code_id"], ["one_time_codes.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_test_sessions_id"), "test_sessions", ["id"], unique=False)
    op.create_index(
        op.f("ix_test_sessions_user_id"), "test_sessions", ["user_id"], unique=False
    )
    op.create_index(
        op.f("ix_test_sessions_test_type_id"),
        "test_sessions",
        ["test_type_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_test_sessions_status"), "test_sessions", ["status"], unique=False
    )
    op.create_index(
        op.f("ix_test_sessions_one_time_code_id"),
        "test_sessions",
        ["one_time_code_id"],
        unique=False,
    )
    op.create_index(
        "ix_test_sessions_user_status",
        "test_sessions",
        ["user_id", "status"],
        unique=False,
    )
    # Only one STARTED or PAUSED scored session per user and test type.
    # Concurrent starts that pass the application check fail here with an
    # IntegrityError.
    op.create_index(
        "ix_test_sessions_user_type_active",
        "test_sessions",
        ["user_id", "test_type_id"],
        unique=True,
        postgresql_where=sa.text(
            "status IN ('STARTED', 'PAUSED') AND is_practice = false"
        ),
        sqlite_where=sa.text("status IN ('STARTED', 'PAUSED') AND is_practice = 0"),
    )

    op.create_table(
        "test_results",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("test_session_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("test_type_id", sa.Integer(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=False),
        sa.Column("raw_speed", sa.Integer(), nullable=False),
        sa.Column("weighted_speed", sa.Integer(), nullable=False),
        sa.Column("time_to_complete", sa.Integer(), nullable=True),
        sa.Column("questions_total", sa.Integer(), nullable=False),
        sa.Column("questions_correct", sa.Integer(), nullable=False),
        sa.Column(
            "detailed_results", postgresql.JSON(astext_type=sa.Text()), nullable=True
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["test_session_id"], ["test_sessions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["test_type_id"], ["test_types.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("test_session_id"),
    )
    op.create_index(op.f("ix_test_results_id"), "test_results", ["id"], unique=False)
    op.create_index(
        op.f("ix_test_results_user_id"), "test_results", ["user_id"], unique=False
    )
    op.create_index(
        "ix_test_results_user_completed",
        "test_results",
        ["user_id", "completed_at"],
        unique=False,
    )

    op.create_table(
        "admin_actions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action", admin_action_type, nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("details", postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_admin_actions_id"), "admin_actions", ["id"], unique=False)
    op.create_index(
        op.f("ix_admin_actions_actor_id"), "admin_actions", ["actor_id"], unique=False
    )
    op.create_index(
        op.f("ix_admin_actions_action"), "admin_actions", ["action"], unique=False
    )
    op.create_index(
        op.f("ix_admin_actions_created_at"),
        "admin_actions",
        ["created_at"],
        unique=False,
    )

    test_types = sa.table(
        "test_types",
        sa.column("name", sa.String),
        sa.column("display_name", sa.String),
        sa.column("description", sa.Text),
        sa.column("is_active", sa.Boolean),
        sa.column("created_at", sa.DateTime(timezone=True)),
    )
    seeded_at = datetime.now(timezone.utc)
    op.bulk_insert(
        test_types,
        [
            {
                "name": name,
                "display_name": display_name,
                "description": description,
                "is_active": True,
                "created_at": seeded_at,
            }
            for name, display_name, description in SEED_TEST_TYPES
        ],
    )


def downgrade() -> None:
    op.drop_table("admin_actions")
    op.drop_table("test_results")
    op.drop_index("ix_test_sessions_user_type_active", table_name="test_sessions")
    op.drop_table("test_sessions")
    op.drop_table("test_requests")
    op.drop_table("entitlements")
    op.drop_table("one_time_codes")
    op.drop_table("typing_passages")
    op.drop_table("test_types")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        admin_action_type,
        test_status,
        request_status,
        grant_source,
        access_level,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
