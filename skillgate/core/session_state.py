"""
Typed working state for a test session.

TestSession.session_state is stored as JSON but always read and written
through SessionState, so every progress update is validated before it is
persisted.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from skillgate.core.config import settings
from skillgate.core.scoring import ScoringMode, TypingMetrics


class Keystroke(BaseModel):
    """A single key event reported by the client."""

    key: str = Field(..., max_length=32)
    timestamp: float = Field(..., ge=0, description="Client timestamp (ms)")
    correct: bool


class RunningStatistics(BaseModel):
    """Latest metrics computed from the typed text."""

    accuracy: float = 100.0
    raw_speed: int = 0
    weighted_speed: int = 0
    total_characters: int = 0
    correct_characters: int = 0
    incorrect_characters: int = 0
    words_typed: int = 0
    correct_words: int = 0
    total_words: int = 0
    word_accuracy: float = 100.0
    elapsed_seconds: float = 0.0
    kph: int = 0
    weighted_kph: int = 0

    @classmethod
    def from_metrics(cls, metrics: TypingMetrics) -> "RunningStatistics":
        data = metrics.to_dict()
        data.pop("mode")
        return cls(**data)


class FinalResults(RunningStatistics):
    """Metrics frozen at completion."""

    final_typed_text: str
    passed: bool


class SessionState(BaseModel):
    """Session-scoped working state."""

    scoring_mode: ScoringMode = ScoringMode.WPM
    passage_id: Optional[int] = None
    expected_text: str = ""
    typed_text: str = ""
    cursor_position: int = Field(default=0, ge=0)
    current_word_index: int = Field(default=0, ge=0)
    keystroke_log: List[Keystroke] = Field(default_factory=list)
    statistics: RunningStatistics = Field(default_factory=RunningStatistics)
    final_results: Optional[FinalResults] = None

    @field_validator("keystroke_log")
    @classmethod
    def cap_keystroke_log(cls, value: List[Keystroke]) -> List[Keystroke]:
        """Keep only the most recent MAX_KEYSTROKE_LOG keystrokes."""
        limit = settings.MAX_KEYSTROKE_LOG
        if len(value) > limit:
            return value[-limit:]
        return value

    @classmethod
    def load(cls, raw: Optional[Dict[str, Any]]) -> "SessionState":
        return cls.model_validate(raw or {})

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def apply_progress(
        self,
        typed_text: str,
        cursor_position: int,
        keystroke: Optional[Keystroke],
        metrics: TypingMetrics,
    ) -> "SessionState":
        """Return a new, validated state with the progress update applied."""
        keystrokes = list(self.keystroke_log)
        if keystroke is not None:
            keystrokes.append(keystroke)
        data = self.model_dump()
        data.update(
            typed_text=typed_text,
            cursor_position=cursor_position,
            current_word_index=len(typed_text[:cursor_position].split(" ")) - 1,
            keystroke_log=keystrokes,
            statistics=RunningStatistics.from_metrics(metrics),
        )
        return SessionState.model_validate(data)
