"""
Tests for the Sentry error tracking wrapper.
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from skillgate.core import error_tracking
from skillgate.core.config import settings
from skillgate.core.error_tracking import ErrorTracker, _serialize_value
from skillgate.models import AccessLevel


class TestErrorTracker:
    """Tests for ErrorTracker."""

    def test_init_skipped_without_dsn(self):
        tracker = ErrorTracker()

        with patch.object(settings, "SENTRY_DSN", ""), patch.object(
            error_tracking, "sentry_sdk"
        ) as sdk:
            assert tracker.init() is False

        sdk.init.assert_not_called()
        assert tracker.initialized is False

    def test_init_with_dsn(self):
        tracker = ErrorTracker()

        with patch.object(
            settings, "SENTRY_DSN", "https://key@sentry.example.com/1"
        ), patch.object(error_tracking, "sentry_sdk") as sdk:
            assert tracker.init() is True

        kwargs = sdk.init.call_args[1]
        assert kwargs["dsn"] == "https://key@sentry.example.com/1"
        assert kwargs["environment"] == settings.ENV
        assert kwargs["send_default_pii"] is False
        assert tracker.initialized is True

    def test_init_failure_is_reported_not_raised(self):
        tracker = ErrorTracker()

        with patch.object(
            settings, "SENTRY_DSN", "https://key@sentry.example.com/1"
        ), patch.object(error_tracking, "sentry_sdk") as sdk:
            sdk.init.side_effect = RuntimeError("bad dsn")
            assert tracker.init() is False

        assert tracker.initialized is False

    def test_capture_is_noop_when_not_initialized(self):
        tracker = ErrorTracker()

        with patch.object(error_tracking, "sentry_sdk") as sdk:
            assert tracker.capture_error(ValueError("x")) is None

        sdk.capture_exception.assert_not_called()

    def test_capture_sets_context_and_tags(self):
        tracker = ErrorTracker()
        tracker._initialized = True
        scope = MagicMock()

        with patch.object(error_tracking, "sentry_sdk") as sdk:
            sdk.new_scope.return_value.__enter__.return_value = scope
            sdk.capture_exception.return_value = "event-1"
            error = ValueError("x")

            event_id = tracker.capture_error(
                error,
                context={"operation": "redeem one-time code"},
                tags={"error_type": "DatabaseOperationError"},
            )

        assert event_id == "event-1"
        sdk.capture_exception.assert_called_once_with(error)
        scope.set_context.assert_called_once_with(
            "additional", {"operation": "redeem one-time code"}
        )
        scope.set_tag.assert_called_once_with("error_type", "DatabaseOperationError")


class TestSerializeValue:
    def test_converts_nested_values(self):
        moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        result = _serialize_value(
            {"at": moment, "level": AccessLevel.ONE_TIME, "ids": (1, 2), 3: None}
        )

        assert result == {
            "at": moment.isoformat(),
            "level": "ONE_TIME",
            "ids": [1, 2],
            "3": None,
        }

    def test_unknown_objects_use_repr(self):
        assert _serialize_value(object).startswith("<class")
