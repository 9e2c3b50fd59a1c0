"""
Graceful failure for non-critical follow-up work.

Used for steps that run after a transaction has committed (analytics
events) where a failure must be logged but must not turn a successful
request into an error.

Usage:
    from skillgate.core.graceful_failure import graceful_failure

    with graceful_failure("track code redemption", logger):
        AnalyticsTracker.track_event(EventType.CODE_REDEEMED, user_id=user.id)
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional


@contextmanager
def graceful_failure(
    operation_name: str,
    logger: logging.Logger,
    *,
    log_level: int = logging.WARNING,
    exc_info: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Log and suppress any exception raised by the wrapped block.

    Args:
        operation_name: Human-readable name of the operation for logging.
        logger: The logger instance to use.
        log_level: Logging level for the failure. Defaults to WARNING.
        exc_info: Whether to include the traceback.
        context: Extra key/value pairs appended to the log message.
    """
    try:
        yield
    except Exception as e:
        message = f"Failed to {operation_name}: {e}"
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"{message} ({context_str})"
        logger.log(log_level, message, exc_info=exc_info)
