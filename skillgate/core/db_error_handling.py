"""
Transaction boundaries and database error handling.

Services in skillgate.core never commit. Every caller wraps one logical
operation in ``unit_of_work`` so that all of its writes (for example a code
consumption plus the entitlement grant, or an approval plus its audit entry)
commit together or not at all.

Usage:
    from skillgate.core.db_error_handling import unit_of_work

    with unit_of_work(db, "redeem one-time code"):
        entitlement = one_time_codes.redeem(db, code, user.id)
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skillgate.core.errors import ServiceError


logger = logging.getLogger(__name__)


class DatabaseOperationError(Exception):
    """Raised when a database operation fails.

    Wraps the underlying SQLAlchemy error with the name of the operation so
    the failure can be reported as "something happened but did not commit".

    Attributes:
        operation_name: Human-readable name of the operation that failed
        original_error: The underlying exception that caused the failure
        message: The formatted error message
    """

    def __init__(
        self,
        operation_name: str,
        original_error: Exception,
        message: Optional[str] = None,
    ):
        self.operation_name = operation_name
        self.original_error = original_error
        self.message = message or f"Failed to {operation_name}: {str(original_error)}"
        super().__init__(self.message)


@contextmanager
def unit_of_work(
    db: Session,
    operation_name: str,
    *,
    log_level: int = logging.ERROR,
) -> Generator[Session, None, None]:
    """Run the wrapped block as one transaction.

    Commits when the block finishes; rolls back on any exception.

    Args:
        db: The SQLAlchemy session that owns the transaction.
        operation_name: Human-readable name used in logs and error messages.
        log_level: Logging level for database failures.

    Raises:
        ServiceError: Re-raised unchanged after rollback.
        DatabaseOperationError: When SQLAlchemy fails, including at commit.
    """
    try:
        yield db
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.log(
            log_level,
            f"Database error during {operation_name}: {e}",
            exc_info=True,
        )
        raise DatabaseOperationError(operation_name, e) from e
    except Exception:
        db.rollback()
        raise
