"""
Typing Score Calculation Module.

Pure functions that turn typed text, expected text and elapsed time into
accuracy and speed metrics. Nothing here touches the database; the test
session lifecycle calls in on every progress update and at completion.

Metrics
=======
**Accuracy** is positional: character i of the typed text is correct when it
equals character i of the expected text. Only the overlap of the two strings
is compared, and the denominator is the typed length, so typing past the end
of the passage lowers accuracy. Nothing typed yet counts as 100%.

**Speed** depends on the test's scoring mode:
- Keyboard (WPM): words = floor(characters / 5); WPM = words / minutes
- Numeric keypad (KPH): KPH = characters / hours

Both are 0 when no time has elapsed.

**Weighted speed** = raw speed x accuracy / 100. It is the primary score, and
because accuracy never exceeds 100 it never exceeds raw speed.

Rounding
========
Speeds round to the nearest integer with halves going up (``round_half_up``),
not Python's banker's rounding. Accuracy is stored rounded to 2 decimals;
weighted speed is computed from the unrounded accuracy. Integers that end up
in result columns are capped at ``MAX_STORED_INT``, so a near-zero or absurd
elapsed time yields a capped speed rather than an error.
"""
import logging
import math
from dataclasses import asdict, dataclass
from decimal import Context, Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Protocol, Tuple

logger = logging.getLogger(__name__)

CHARACTERS_PER_WORD = 5
# Multiplier used to report a keyboard WPM on the keypad KPH scale
KPH_PER_WPM = 12

PERFECT_ACCURACY = 100.0

# Largest value a 32-bit Integer column holds
MAX_STORED_INT = 2_147_483_647

# Enough digits to quantize any finite float without InvalidOperation
_ROUNDING_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)


class ScoringMode(str, Enum):
    """Speed unit used to score a typing test."""

    WPM = "WPM"
    KPH = "KPH"


@dataclass
class TypingMetrics:
    """Accuracy and speed metrics for one snapshot of typed text."""

    mode: ScoringMode
    accuracy: float
    raw_speed: int
    weighted_speed: int
    total_characters: int
    correct_characters: int
    incorrect_characters: int
    words_typed: int
    correct_words: int
    total_words: int
    word_accuracy: float
    elapsed_seconds: float
    # Keystrokes-per-hour equivalents, reported for both modes
    kph: int
    weighted_kph: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves away from zero.

    Raises:
        ValueError: value is infinite or NaN
    """
    if not math.isfinite(value):
        raise ValueError(f"Cannot round non-finite value {value}")
    return int(Decimal(str(value)).quantize(Decimal("1"), context=_ROUNDING_CONTEXT))


def round_accuracy(value: float) -> float:
    """Round an accuracy percentage to 2 decimal places, halves up."""
    return float(
        Decimal(str(value)).quantize(Decimal("0.01"), context=_ROUNDING_CONTEXT)
    )


def to_stored_int(value: float) -> int:
    """Round half up into [0, MAX_STORED_INT]; NaN and negatives give 0."""
    if math.isnan(value) or value <= 0:
        return 0
    return round_half_up(min(value, MAX_STORED_INT))


def correct_character_count(typed: str, expected: str) -> int:
    """Count positions in the overlap where typed matches expected."""
    return sum(1 for t, e in zip(typed, expected) if t == e)


def calculate_accuracy(typed: str, expected: str) -> float:
    """
    Character accuracy as a percentage (unrounded).

    Returns 100.0 when nothing has been typed.
    """
    if not typed:
        return PERFECT_ACCURACY
    return 100.0 * correct_character_count(typed, expected) / len(typed)


def words_typed(typed: str) -> int:
    """Standard word count: every 5 characters is one word."""
    return len(typed) // CHARACTERS_PER_WORD


def word_level_accuracy(typed: str, expected: str) -> Tuple[int, int, float]:
    """
    Whole-word accuracy for auxiliary reporting.

    Splits both texts on whitespace and compares words position by position.

    Returns:
        (correct_words, total_words_typed, accuracy_percentage)
    """
    typed_words = typed.split()
    expected_words = expected.split()
    correct = sum(1 for t, e in zip(typed_words, expected_words) if t == e)
    total = len(typed_words)
    if total == 0:
        return 0, 0, PERFECT_ACCURACY
    return correct, total, round_accuracy(100.0 * correct / total)


def weighted_speed(raw_speed: int, accuracy: float) -> int:
    """Scale raw speed by accuracy; the primary score."""
    return round_half_up(raw_speed * accuracy / 100.0)


class ScoringStrategy(Protocol):
    """
    Protocol for typing speed strategies.

    Any class implementing this protocol can score a test type.
    """

    mode: ScoringMode

    def raw_speed(self, typed: str, elapsed_seconds: float) -> int:
        """
        Calculate raw speed from typed text and elapsed time.

        Args:
            typed: Text typed so far
            elapsed_seconds: Active time spent typing

        Returns:
            Speed in the strategy's unit, 0 if no time has elapsed
        """
        ...


class KeyboardWpmScoring:
    """Words per minute using the 5-characters-per-word convention."""

    mode = ScoringMode.WPM

    def raw_speed(self, typed: str, elapsed_seconds: float) -> int:
        minutes = elapsed_seconds / 60.0
        if minutes <= 0:
            return 0
        return to_stored_int(words_typed(typed) / minutes)


class TenKeyKphScoring:
    """Keystrokes per hour for numeric keypad tests."""

    mode = ScoringMode.KPH

    def raw_speed(self, typed: str, elapsed_seconds: float) -> int:
        hours = elapsed_seconds / 3600.0
        if hours <= 0:
            return 0
        return to_stored_int(len(typed) / hours)


_strategies: Dict[ScoringMode, ScoringStrategy] = {
    ScoringMode.WPM: KeyboardWpmScoring(),
    ScoringMode.KPH: TenKeyKphScoring(),
}


def set_scoring_strategy(strategy: ScoringStrategy) -> None:
    """
    Replace the strategy used for ``strategy.mode``.

    Args:
        strategy: Scoring strategy to use
    """
    _strategies[strategy.mode] = strategy


def get_scoring_strategy(mode: ScoringMode) -> ScoringStrategy:
    return _strategies[mode]


def score_typing(
    typed: str, expected: str, elapsed_seconds: float, mode: ScoringMode
) -> TypingMetrics:
    """
    Compute the full metric set for a typing snapshot.

    Args:
        typed: Text typed so far (or the final text)
        expected: Passage the user is copying
        elapsed_seconds: Active typing time; non-positive values give 0 speed
        mode: WPM for keyboard tests, KPH for numeric keypad tests

    Returns:
        TypingMetrics with accuracy rounded to 2 decimals
    """
    strategy = get_scoring_strategy(mode)
    elapsed = max(0.0, float(elapsed_seconds))

    accuracy = calculate_accuracy(typed, expected)
    raw = strategy.raw_speed(typed, elapsed)
    weighted = weighted_speed(raw, accuracy)
    correct = correct_character_count(typed, expected)
    correct_words, total_words, word_accuracy = word_level_accuracy(typed, expected)

    if mode == ScoringMode.KPH:
        kph, weighted_kph = raw, weighted
    else:
        kph = to_stored_int(raw * KPH_PER_WPM)
        weighted_kph = to_stored_int(weighted * KPH_PER_WPM)

    return TypingMetrics(
        mode=mode,
        accuracy=round_accuracy(accuracy),
        raw_speed=raw,
        weighted_speed=weighted,
        total_characters=len(typed),
        correct_characters=correct,
        incorrect_characters=len(typed) - correct,
        words_typed=words_typed(typed),
        correct_words=correct_words,
        total_words=total_words,
        word_accuracy=word_accuracy,
        elapsed_seconds=round(elapsed, 3),
        kph=kph,
        weighted_kph=weighted_kph,
    )
