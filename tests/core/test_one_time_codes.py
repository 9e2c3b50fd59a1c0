"""
Tests for the one-time code registry.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update

from skillgate.core import entitlements, one_time_codes
from skillgate.core.config import settings
from skillgate.core.datetime_utils import ensure_timezone_aware, utc_now
from skillgate.core.errors import (
    ErrorKind,
    ExhaustionError,
    NotFoundError,
    StateConflictError,
    ValidationFailedError,
)
from skillgate.core.test_types import BASIC_MATH, TYPING_KEYBOARD
from skillgate.models import (
    AccessLevel,
    AdminAction,
    AdminActionType,
    GrantSource,
    OneTimeCode,
    RequestStatus,
    TestRequest,
    TestSession,
    TestStatus,
)


def _make_code(
    db_session, test_type, creator, code="ABCD2345", is_active=True, **kwargs
) -> OneTimeCode:
    record = OneTimeCode(
        code=code,
        test_type_id=test_type.id,
        created_by=creator.id,
        is_active=is_active,
        **kwargs,
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


def _actions(db_session, action):
    return db_session.query(AdminAction).filter(AdminAction.action == action).all()


class TestGenerate:
    """Tests for batch code generation."""

    def test_generates_single_code_by_default(self, db_session, admin_user, test_types):
        math = test_types[BASIC_MATH]
        codes = one_time_codes.generate(db_session, math.id, admin_user.id)
        db_session.commit()

        assert len(codes) == 1
        code = codes[0]
        assert len(code.code) == settings.ONE_TIME_CODE_LENGTH
        assert set(code.code) <= set(settings.ONE_TIME_CODE_ALPHABET)
        assert code.is_active is True
        assert code.used_by is None
        assert code.created_by == admin_user.id
        assert code.expires_at is None

    def test_batch_codes_are_unique(self, db_session, admin_user, test_types):
        codes = one_time_codes.generate(
            db_session, test_types[BASIC_MATH].id, admin_user.id, count=25
        )
        db_session.commit()

        assert len({c.code for c in codes}) == 25

    def test_records_audit_entry(self, db_session, admin_user, test_types):
        math = test_types[BASIC_MATH]
        codes = one_time_codes.generate(db_session, math.id, admin_user.id, count=3)
        db_session.commit()

        entries = _actions(db_session, AdminActionType.CODES_CREATED)
        assert len(entries) == 1
        assert entries[0].actor_id == admin_user.id
        assert entries[0].target_id == math.id
        assert entries[0].details["count"] == 3
        assert sorted(entries[0].details["codes"]) == sorted(c.code for c in codes)

    @pytest.mark.parametrize("count", [0, -1, 51])
    def test_rejects_count_out_of_range(self, db_session, admin_user, test_types, count):
        with pytest.raises(ValidationFailedError):
            one_time_codes.generate(
                db_session, test_types[BASIC_MATH].id, admin_user.id, count=count
            )

    def test_accepts_maximum_batch(self, db_session, admin_user, test_types):
        codes = one_time_codes.generate(
            db_session,
            test_types[BASIC_MATH].id,
            admin_user.id,
            count=settings.ONE_TIME_CODE_MAX_BATCH,
        )
        assert len(codes) == settings.ONE_TIME_CODE_MAX_BATCH

    def test_expiry_in_hours(self, db_session, admin_user, test_types):
        before = utc_now()
        codes = one_time_codes.generate(
            db_session, test_types[BASIC_MATH].id, admin_user.id, expires_in_hours=24
        )
        db_session.commit()

        expires_at = ensure_timezone_aware(codes[0].expires_at)
        assert before + timedelta(hours=24) <= expires_at
        assert expires_at <= utc_now() + timedelta(hours=24)

    def test_rejects_both_expiry_forms(self, db_session, admin_user, test_types):
        with pytest.raises(ValidationFailedError):
            one_time_codes.generate(
                db_session,
                test_types[BASIC_MATH].id,
                admin_user.id,
                expires_at=utc_now() + timedelta(hours=1),
                expires_in_hours=1,
            )

    @pytest.mark.parametrize("hours", [0, 169])
    def test_rejects_expiry_hours_out_of_range(
        self, db_session, admin_user, test_types, hours
    ):
        with pytest.raises(ValidationFailedError):
            one_time_codes.generate(
                db_session,
                test_types[BASIC_MATH].id,
                admin_user.id,
                expires_in_hours=hours,
            )

    def test_rejects_expiry_in_the_past(self, db_session, admin_user, test_types):
        with pytest.raises(ValidationFailedError):
            one_time_codes.generate(
                db_session,
                test_types[BASIC_MATH].id,
                admin_user.id,
                expires_at=utc_now() - timedelta(minutes=1),
            )

    def test_unknown_test_type(self, db_session, admin_user, test_types):
        with pytest.raises(NotFoundError):
            one_time_codes.generate(db_session, 9999, admin_user.id)

    def test_inactive_test_type(self, db_session, admin_user, test_types):
        math = test_types[BASIC_MATH]
        math.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            one_time_codes.generate(db_session, math.id, admin_user.id)

    def test_exhaustion_persists_nothing(self, db_session, admin_user, test_types):
        with patch.object(one_time_codes, "_code_exists", return_value=True):
            with pytest.raises(ExhaustionError) as exc_info:
                one_time_codes.generate(
                    db_session, test_types[BASIC_MATH].id, admin_user.id, count=5
                )
        db_session.rollback()

        assert exc_info.value.kind == ErrorKind.GENERATION_EXHAUSTED
        assert db_session.query(OneTimeCode).count() == 0
        assert _actions(db_session, AdminActionType.CODES_CREATED) == []

    def test_collision_within_batch_exhausts_whole_batch(
        self, db_session, admin_user, test_types
    ):
        """Only one distinct value can be drawn, so the second slot fails."""
        with patch.object(one_time_codes, "_random_code", return_value="ZZZZ2222"):
            with pytest.raises(ExhaustionError):
                one_time_codes.generate(
                    db_session, test_types[BASIC_MATH].id, admin_user.id, count=2
                )
        db_session.rollback()

        assert db_session.query(OneTimeCode).count() == 0

    def test_skips_existing_codes(self, db_session, admin_user, test_types):
        math = test_types[BASIC_MATH]
        _make_code(db_session, math, admin_user, code="TAKEN234")

        draws = iter(["TAKEN234", "FRESH234"])
        with patch.object(one_time_codes, "_random_code", side_effect=lambda: next(draws)):
            codes = one_time_codes.generate(db_session, math.id, admin_user.id)

        assert [c.code for c in codes] == ["FRESH234"]


class TestRedeem:
    """Tests for code redemption."""

    def test_grants_one_time_access(self, db_session, test_user, admin_user, test_types):
        math = test_types[BASIC_MATH]
        code = _make_code(db_session, math, admin_user)

        redemption = one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        db_session.commit()

        assert redemption.test_type.id == math.id
        assert redemption.entitlement.access_level == AccessLevel.ONE_TIME
        assert redemption.entitlement.source == GrantSource.CODE
        assert redemption.entitlement.source_code_id == code.id
        assert redemption.entitlement.granted_by == test_user.id

        db_session.refresh(code)
        assert code.used_by == test_user.id
        assert code.used_at is not None
        assert code.is_active is False

    def test_pending_request_is_not_credited_to_code_creator(
        self, db_session, test_user, admin_user, test_types
    ):
        math = test_types[BASIC_MATH]
        _make_code(db_session, math, admin_user)
        pending = TestRequest(
            user_id=test_user.id,
            test_type_id=math.id,
            reason="Need it for my application",
            status=RequestStatus.PENDING,
        )
        db_session.add(pending)
        db_session.commit()

        one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        db_session.commit()

        db_session.refresh(pending)
        assert pending.status == RequestStatus.APPROVED
        assert pending.reviewed_by == test_user.id

    def test_code_is_normalized(self, db_session, test_user, admin_user, test_types):
        _make_code(db_session, test_types[BASIC_MATH], admin_user)

        redemption = one_time_codes.redeem(db_session, "  abcd2345 ", test_user.id)

        assert redemption.code.code == "ABCD2345"

    def test_unknown_code(self, db_session, test_user, test_types):
        with pytest.raises(NotFoundError):
            one_time_codes.redeem(db_session, "NOPE2345", test_user.id)

    def test_used_code(self, db_session, test_user, other_user, admin_user, test_types):
        math = test_types[BASIC_MATH]
        _make_code(db_session, math, admin_user)
        one_time_codes.redeem(db_session, "ABCD2345", other_user.id)
        db_session.commit()

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        assert exc_info.value.kind == ErrorKind.ALREADY_USED

    def test_deactivated_code_reads_as_used(
        self, db_session, test_user, admin_user, test_types
    ):
        _make_code(db_session, test_types[BASIC_MATH], admin_user, is_active=False)

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        assert exc_info.value.kind == ErrorKind.ALREADY_USED

    def test_expired_code_is_not_consumed(
        self, db_session, test_user, admin_user, test_types
    ):
        code = _make_code(
            db_session,
            test_types[BASIC_MATH],
            admin_user,
            expires_at=utc_now() - timedelta(hours=1),
        )

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        assert exc_info.value.kind == ErrorKind.EXPIRED

        db_session.refresh(code)
        assert code.used_by is None
        assert code.is_active is True

    def test_already_entitled_is_not_consumed(
        self, db_session, test_user, admin_user, test_types, grant_access
    ):
        math = test_types[BASIC_MATH]
        grant_access(test_user, math, AccessLevel.UNLIMITED)
        code = _make_code(db_session, math, admin_user)

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        assert exc_info.value.kind == ErrorKind.ALREADY_ENTITLED

        db_session.refresh(code)
        assert code.used_by is None
        assert entitlements.current_level(db_session, test_user.id, math.id) == (
            AccessLevel.UNLIMITED
        )

    def test_practice_only_holder_is_upgraded(
        self, db_session, test_user, admin_user, test_types, grant_access
    ):
        math = test_types[BASIC_MATH]
        grant_access(test_user, math, AccessLevel.PRACTICE_ONLY)
        _make_code(db_session, math, admin_user)

        one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        db_session.commit()

        assert entitlements.current_level(db_session, test_user.id, math.id) == (
            AccessLevel.ONE_TIME
        )

    def test_lost_race_is_rejected(
        self, db_session, second_session, test_user, other_user, admin_user, test_types
    ):
        """Another transaction consumes the code after this one has read it."""
        math = test_types[BASIC_MATH]
        code = _make_code(db_session, math, admin_user)
        code_id = code.id
        other_id = other_user.id

        def consume_elsewhere(*args, **kwargs):
            second_session.execute(
                update(OneTimeCode)
                .where(OneTimeCode.id == code_id)
                .values(used_by=other_id, used_at=utc_now(), is_active=False)
            )
            second_session.commit()
            return None

        with patch.object(entitlements, "get_active", side_effect=consume_elsewhere):
            with pytest.raises(StateConflictError) as exc_info:
                one_time_codes.redeem(db_session, "ABCD2345", test_user.id)
        db_session.rollback()

        assert exc_info.value.kind == ErrorKind.ALREADY_USED
        assert entitlements.get(db_session, test_user.id, math.id) is None


class TestDeactivate:
    """Tests for withdrawing unused codes."""

    def test_deactivates_unused_code(self, db_session, admin_user, test_types):
        code = _make_code(db_session, test_types[BASIC_MATH], admin_user)

        one_time_codes.deactivate(db_session, code.id, admin_user.id)
        db_session.commit()

        db_session.refresh(code)
        assert code.is_active is False
        entries = _actions(db_session, AdminActionType.CODE_DEACTIVATED)
        assert [e.target_id for e in entries] == [code.id]
        assert entries[0].details["code"] == "ABCD2345"

    def test_twice_is_already_inactive(self, db_session, admin_user, test_types):
        code = _make_code(db_session, test_types[BASIC_MATH], admin_user)
        one_time_codes.deactivate(db_session, code.id, admin_user.id)
        db_session.commit()

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.deactivate(db_session, code.id, admin_user.id)
        assert exc_info.value.kind == ErrorKind.ALREADY_INACTIVE

    def test_used_code(self, db_session, test_user, admin_user, test_types):
        code = _make_code(db_session, test_types[BASIC_MATH], admin_user)
        one_time_codes.redeem(db_session, code.code, test_user.id)
        db_session.commit()

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.deactivate(db_session, code.id, admin_user.id)
        assert exc_info.value.kind == ErrorKind.ALREADY_USED

    def test_unknown_code(self, db_session, admin_user, test_types):
        with pytest.raises(NotFoundError):
            one_time_codes.deactivate(db_session, 9999, admin_user.id)


class TestDelete:
    """Tests for hard-deleting codes."""

    def test_deletes_unused_code(self, db_session, admin_user, test_types):
        code = _make_code(db_session, test_types[BASIC_MATH], admin_user)
        code_id = code.id

        one_time_codes.delete(db_session, code_id, admin_user.id)
        db_session.commit()

        assert db_session.get(OneTimeCode, code_id) is None
        entries = _actions(db_session, AdminActionType.CODE_DELETED)
        assert [e.target_id for e in entries] == [code_id]

    def test_deactivated_code_can_be_deleted(self, db_session, admin_user, test_types):
        code = _make_code(
            db_session, test_types[BASIC_MATH], admin_user, is_active=False
        )
        one_time_codes.delete(db_session, code.id, admin_user.id)
        db_session.commit()

        assert db_session.query(OneTimeCode).count() == 0

    def test_used_code_is_in_use(self, db_session, test_user, admin_user, test_types):
        code = _make_code(db_session, test_types[BASIC_MATH], admin_user)
        one_time_codes.redeem(db_session, code.code, test_user.id)
        db_session.commit()

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.delete(db_session, code.id, admin_user.id)
        assert exc_info.value.kind == ErrorKind.CODE_IN_USE

    def test_code_attached_to_session_is_in_use(
        self, db_session, test_user, admin_user, test_types
    ):
        math = test_types[BASIC_MATH]
        code = _make_code(db_session, math, admin_user, is_active=False)
        db_session.add(
            TestSession(
                user_id=test_user.id,
                test_type_id=math.id,
                status=TestStatus.COMPLETED,
                one_time_code_id=code.id,
                session_state={},
            )
        )
        db_session.commit()

        with pytest.raises(StateConflictError) as exc_info:
            one_time_codes.delete(db_session, code.id, admin_user.id)
        assert exc_info.value.kind == ErrorKind.CODE_IN_USE

    def test_unknown_code(self, db_session, admin_user, test_types):
        with pytest.raises(NotFoundError):
            one_time_codes.delete(db_session, 9999, admin_user.id)


class TestListingAndStats:
    """Tests for code listing, display status and statistics."""

    @pytest.fixture
    def mixed_codes(self, db_session, test_user, admin_user, test_types):
        math = test_types[BASIC_MATH]
        typing = test_types[TYPING_KEYBOARD]
        active = _make_code(db_session, math, admin_user, code="ACTV2345")
        used = _make_code(db_session, math, admin_user, code="USED2345")
        one_time_codes.redeem(db_session, used.code, test_user.id)
        expired = _make_code(
            db_session,
            math,
            admin_user,
            code="EXPD2345",
            expires_at=utc_now() - timedelta(hours=1),
        )
        inactive = _make_code(
            db_session, math, admin_user, code="INAC2345", is_active=False
        )
        other_type = _make_code(db_session, typing, admin_user, code="TYPE2345")
        db_session.commit()
        return {
            "active": active,
            "used": used,
            "expired": expired,
            "inactive": inactive,
            "other_type": other_type,
        }

    def test_code_status(self, db_session, mixed_codes):
        now = utc_now()
        assert one_time_codes.code_status(mixed_codes["active"], now) == "active"
        assert one_time_codes.code_status(mixed_codes["used"], now) == "used"
        assert one_time_codes.code_status(mixed_codes["expired"], now) == "expired"
        assert one_time_codes.code_status(mixed_codes["inactive"], now) == "inactive"

    def test_filter_by_test_type(self, db_session, test_types, mixed_codes):
        codes = one_time_codes.list_codes(db_session, test_types[BASIC_MATH].id)
        assert {c.code for c in codes} == {
            "ACTV2345",
            "USED2345",
            "EXPD2345",
            "INAC2345",
        }

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("active", {"ACTV2345", "TYPE2345"}),
            ("used", {"USED2345"}),
            ("expired", {"EXPD2345"}),
            ("inactive", {"INAC2345"}),
        ],
    )
    def test_filter_by_status(self, db_session, mixed_codes, status, expected):
        codes = one_time_codes.list_codes(db_session, status=status)
        assert {c.code for c in codes} == expected

    def test_stats(self, db_session, test_user, test_types, mixed_codes):
        math = test_types[BASIC_MATH]
        db_session.add(
            TestSession(
                user_id=test_user.id,
                test_type_id=math.id,
                status=TestStatus.COMPLETED,
                one_time_code_id=mixed_codes["used"].id,
                session_state={},
            )
        )
        db_session.commit()

        codes = one_time_codes.list_codes(db_session, math.id)
        stats = one_time_codes.code_stats(db_session, codes)

        assert stats.total == 4
        assert stats.active == 1
        assert stats.used == 1
        assert stats.expired == 1
        assert stats.inactive == 1
        assert stats.total_usage == 1

    def test_stats_of_nothing(self, db_session):
        stats = one_time_codes.code_stats(db_session, [])
        assert stats.total == 0
        assert stats.total_usage == 0
