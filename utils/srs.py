"""
Spaced repetition scheduler.

A fixed, deterministic formula in the SM-2 family. Each review moves the
ease factor and the interval; the next due time is always `now + interval`.

Grades: 'again' (forgot), 'good' (remembered), 'easy' (remembered instantly)
"""

from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum

from utils.models import MAX_EASE, MIN_EASE, ReviewState


class Grade(str, Enum):
    AGAIN = 'again'
    GOOD = 'good'
    EASY = 'easy'


# ~6 hours before a forgotten card comes back
AGAIN_INTERVAL_DAYS = 0.25

GOOD_FIRST_INTERVAL = 1.0
EASY_FIRST_INTERVAL = 2.0
EASY_BONUS = 1.3

AGAIN_EASE_DELTA = -0.20
GOOD_EASE_DELTA = 0.05
EASY_EASE_DELTA = 0.15


def clamp_ease(ease: float) -> float:
    # round() only strips float noise: every delta is a multiple of 0.05
    return round(max(MIN_EASE, min(MAX_EASE, ease)), 2)


def transition(state: ReviewState, grade: Grade | str, now: datetime) -> ReviewState:
    """
    Return the review state after grading a card at `now`.

    Raises ValueError for anything that is not a Grade; that is a caller bug,
    not a data problem.
    """
    grade = Grade(grade)

    if grade is Grade.AGAIN:
        interval = AGAIN_INTERVAL_DAYS
        return replace(
            state,
            lapses=state.lapses + 1,
            reps=0,
            ease=clamp_ease(state.ease + AGAIN_EASE_DELTA),
            interval_days=interval,
            due=now + timedelta(days=interval),
        )

    if grade is Grade.GOOD:
        ease = clamp_ease(state.ease + GOOD_EASE_DELTA)
        if state.reps == 0:
            interval = GOOD_FIRST_INTERVAL
        else:
            interval = max(GOOD_FIRST_INTERVAL, state.interval_days * ease)
    else:
        ease = clamp_ease(state.ease + EASY_EASE_DELTA)
        if state.reps == 0:
            interval = EASY_FIRST_INTERVAL
        else:
            interval = max(EASY_FIRST_INTERVAL, state.interval_days * ease * EASY_BONUS)

    return replace(
        state,
        ease=ease,
        interval_days=interval,
        reps=state.reps + 1,
        due=now + timedelta(days=interval),
    )


def preview_intervals(state: ReviewState, now: datetime) -> dict[Grade, float]:
    """Interval in days each grade would give, for the grade buttons."""
    return {grade: transition(state, grade, now).interval_days for grade in Grade}


def format_interval(days: float) -> str:
    """Human-readable label: 6h, 1d, 12d, 2mo, 1.2y."""
    if days < 1:
        hours = max(1, round(days * 24))
        return f"{hours}h"
    elif days < 30:
        return f"{round(days)}d"
    elif days < 365:
        months = round(days / 30)
        return f"{months}mo"
    else:
        years = round(days / 365, 1)
        return f"{years}y"
