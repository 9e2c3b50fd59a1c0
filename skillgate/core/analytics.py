"""
Analytics and event tracking for access and test-session events.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any

from skillgate.core.config import settings

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Analytics event types."""

    # Access events
    CODES_GENERATED = "access.codes_generated"
    CODE_REDEEMED = "access.code_redeemed"
    ACCESS_REQUESTED = "access.requested"
    REQUEST_APPROVED = "access.request_approved"
    REQUEST_DENIED = "access.request_denied"
    ENTITLEMENT_SET = "access.entitlement_set"

    # Test session events
    TEST_STARTED = "test.started"
    TEST_PAUSED = "test.paused"
    TEST_RESUMED = "test.resumed"
    TEST_COMPLETED = "test.completed"
    TEST_CANCELLED = "test.cancelled"
    TEST_DELETED = "test.deleted"

    # Errors
    API_ERROR = "api.error"


class AnalyticsTracker:
    """
    Analytics event tracker.

    Events are emitted as structured log records; a log pipeline forwards
    them to whatever analytics sink the deployment uses.
    """

    @staticmethod
    def track_event(
        event_type: EventType,
        user_id: Optional[int] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Track an analytics event.

        Args:
            event_type: Type of event being tracked
            user_id: Optional user ID associated with the event
            properties: Optional dictionary of event properties

        Example:
            AnalyticsTracker.track_event(
                EventType.TEST_COMPLETED,
                user_id=123,
                properties={"session_id": 7, "weighted_speed": 58}
            )
        """
        event_data = {
            "event": event_type.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user_id": user_id,
            "properties": properties or {},
            "environment": settings.ENV,
        }

        logger.info(
            f"Analytics Event: {event_type.value}",
            extra={
                "event_data": event_data,
                "user_id": user_id,
            },
        )

    @staticmethod
    def track_test_started(
        user_id: int, session_id: int, test_type: str, is_practice: bool
    ) -> None:
        """Track test session start."""
        AnalyticsTracker.track_event(
            EventType.TEST_STARTED,
            user_id=user_id,
            properties={
                "session_id": session_id,
                "test_type": test_type,
                "is_practice": is_practice,
            },
        )

    @staticmethod
    def track_test_completed(
        user_id: int,
        session_id: int,
        weighted_speed: int,
        accuracy: float,
        is_practice: bool,
    ) -> None:
        """Track test session completion."""
        AnalyticsTracker.track_event(
            EventType.TEST_COMPLETED,
            user_id=user_id,
            properties={
                "session_id": session_id,
                "weighted_speed": weighted_speed,
                "accuracy": accuracy,
                "is_practice": is_practice,
            },
        )

    @staticmethod
    def track_api_error(
        method: str,
        path: str,
        error_type: str,
        error_message: str,
        user_id: Optional[int] = None,
    ) -> None:
        """Track API errors."""
        AnalyticsTracker.track_event(
            EventType.API_ERROR,
            user_id=user_id,
            properties={
                "method": method,
                "path": path,
                "error_type": error_type,
                "error_message": error_message,
            },
        )
