"""
SuperMemo-2 scheduler for flashcard reviews.

This is a pure computation module with no I/O: every function returns new
values and the caller persists them.
"""

import math
from dataclasses import replace
from enum import IntEnum

from lingolift.domain.clock import now_ms
from lingolift.domain.constants import (
    DEFAULT_EFACTOR,
    EASY_PREVIEW_FACTOR,
    FIRST_INTERVAL_DAYS,
    HARD_PREVIEW_FACTOR,
    MIN_EFACTOR,
    MS_PER_DAY,
    SECOND_INTERVAL_DAYS,
)
from lingolift.domain.models import Flashcard


class Grade(IntEnum):
    """Buttons offered after revealing a card."""

    AGAIN = 0  # Forgot completely (reset)
    HARD = 1
    GOOD = 2
    EASY = 3


_QUALITY = {Grade.HARD: 3, Grade.GOOD: 4, Grade.EASY: 5}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return math.floor(value + 0.5)


def create_initial_state(now: int | None = None) -> dict:
    """SRS fields for a brand-new card, due immediately."""
    ts = now_ms() if now is None else now
    return {
        "interval": 0,
        "repetition": 0,
        "efactor": DEFAULT_EFACTOR,
        "next_review": ts,
        "last_updated": ts,
    }


def next_efactor(efactor: float, grade: Grade) -> float:
    """
    Update the easiness factor for a graded review.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3.
    AGAIN leaves the factor untouched.
    """
    if grade == Grade.AGAIN:
        return efactor
    q = _QUALITY[grade]
    updated = efactor + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    return max(updated, MIN_EFACTOR)


def schedule_review(card: Flashcard, grade: Grade, now: int | None = None) -> Flashcard:
    """
    Return `card` rescheduled for the given grade.

    The interval is rounded to a whole day at every step, so rounding
    compounds across repetitions. `last_updated` is always bumped to `now`,
    even on AGAIN, so the review propagates on the next sync.
    """
    grade = Grade(grade)
    ts = now_ms() if now is None else now

    efactor = next_efactor(card.efactor, grade)

    if grade == Grade.AGAIN:
        repetition = 0
        interval = 0
        next_review = ts
    else:
        repetition = card.repetition + 1
        if repetition == 1:
            interval = FIRST_INTERVAL_DAYS
        elif repetition == 2:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = round_half_up(card.interval * efactor)
        next_review = ts + interval * MS_PER_DAY

    return replace(
        card,
        interval=interval,
        repetition=repetition,
        efactor=efactor,
        next_review=next_review,
        last_updated=ts,
    )


def preview_next_interval(current_interval: int, grade: Grade, current_efactor: float) -> str:
    """
    Human-readable label for the interval a grade would produce.

    Mirrors the scheduler's interval steps without touching the easiness
    factor, then nudges HARD down (x0.8, at least a day) and EASY up (x1.3).
    """
    grade = Grade(grade)
    if grade == Grade.AGAIN:
        return "< 1m"

    if current_interval == 0:
        days = FIRST_INTERVAL_DAYS
    elif current_interval == FIRST_INTERVAL_DAYS:
        days = SECOND_INTERVAL_DAYS
    else:
        days = round_half_up(current_interval * current_efactor)

    if grade == Grade.HARD:
        days = max(1, math.floor(days * HARD_PREVIEW_FACTOR))
    elif grade == Grade.EASY:
        days = math.floor(days * EASY_PREVIEW_FACTOR)

    return format_days(days)


def format_days(days: int) -> str:
    if days < 30:
        return f"{days}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{round(days / 365, 1)}y"
