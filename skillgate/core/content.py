"""
Test content providers.

Typing tests need a passage to copy. Content comes from an external
question provider behind the ContentProvider protocol; the default provider
draws a random active passage from the typing_passages table.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skillgate.models import TestType, TypingPassage

logger = logging.getLogger(__name__)


class ContentProviderError(Exception):
    """The content provider could not be reached or returned garbage."""


@dataclass(frozen=True)
class TestContent:
    """Content blob for one session."""

    passage_id: Optional[int]
    text: str


class ContentProvider(Protocol):
    """Protocol for sources of test content."""

    def fetch(self, db: Session, test_type: TestType) -> Optional[TestContent]:
        """
        Return content for a new session of ``test_type``.

        Returns:
            TestContent, or None if no content is available

        Raises:
            ContentProviderError: If the provider itself fails
        """
        ...


class PassageBankProvider:
    """Random active passage from the typing_passages table."""

    def fetch(self, db: Session, test_type: TestType) -> Optional[TestContent]:
        try:
            passage = (
                db.query(TypingPassage)
                .filter(
                    TypingPassage.test_type_id == test_type.id,
                    TypingPassage.is_active.is_(True),
                )
                .order_by(func.random())
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Passage lookup failed for {test_type.name}: {e}")
            raise ContentProviderError(str(e)) from e

        if passage is None:
            return None
        return TestContent(passage_id=passage.id, text=passage.text)


_provider: ContentProvider = PassageBankProvider()


def set_content_provider(provider: ContentProvider) -> None:
    """Swap the content provider (used by tests and alternative deployments)."""
    global _provider
    _provider = provider


def get_content_provider() -> ContentProvider:
    return _provider
