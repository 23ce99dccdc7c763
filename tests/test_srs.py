"""
Tests for utils/srs.py: pure Python, no Telegram, no DB, no async.
"""
import random
from datetime import datetime, timedelta, timezone

import pytest

from utils.models import DEFAULT_EASE, MAX_EASE, MIN_EASE, ReviewState
from utils.srs import (
    AGAIN_INTERVAL_DAYS,
    Grade,
    clamp_ease,
    format_interval,
    preview_intervals,
    transition,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Shared helper ─────────────────────────────────────────────

def state(interval_days=0.0, ease=DEFAULT_EASE, reps=0, lapses=0):
    return ReviewState(due=NOW, interval_days=interval_days, ease=ease, reps=reps, lapses=lapses)


# ── Fresh cards ───────────────────────────────────────────────

class TestFresh:
    def test_good_gives_one_day(self):
        r = transition(state(), Grade.GOOD, NOW)
        assert r.interval_days == 1
        assert r.reps == 1
        assert r.ease == 2.35
        assert r.due == NOW + timedelta(days=1)

    def test_easy_gives_two_days(self):
        r = transition(state(), Grade.EASY, NOW)
        assert r.interval_days == 2
        assert r.reps == 1
        assert r.ease == 2.45

    def test_again_gives_six_hours(self):
        r = transition(state(), Grade.AGAIN, NOW)
        assert r.interval_days == AGAIN_INTERVAL_DAYS
        assert r.due == NOW + timedelta(hours=6)
        assert r.lapses == 1
        assert r.reps == 0
        assert r.ease == 2.1

    def test_accepts_plain_strings(self):
        assert transition(state(), 'good', NOW) == transition(state(), Grade.GOOD, NOW)

    def test_input_state_untouched(self):
        s = state()
        transition(s, Grade.EASY, NOW)
        assert s == state()


# ── Reviewed cards ────────────────────────────────────────────

class TestReviewed:
    def test_good_multiplies_by_new_ease(self):
        r = transition(state(interval_days=4, ease=2.0, reps=2), Grade.GOOD, NOW)
        assert r.ease == 2.05
        assert r.interval_days == pytest.approx(8.2)
        assert r.reps == 3

    def test_easy_adds_bonus(self):
        r = transition(state(interval_days=4, ease=2.0, reps=2), Grade.EASY, NOW)
        assert r.ease == 2.15
        assert r.interval_days == pytest.approx(4 * 2.15 * 1.3)

    def test_good_never_below_one_day(self):
        # a lapsed card: reps reset, small interval, low ease
        r = transition(state(interval_days=0.25, ease=1.3, reps=1), Grade.GOOD, NOW)
        assert r.interval_days == 1

    def test_easy_never_below_two_days(self):
        r = transition(state(interval_days=0.25, ease=1.3, reps=1), Grade.EASY, NOW)
        assert r.interval_days == 2

    def test_again_then_good(self):
        lapsed = transition(state(), Grade.AGAIN, NOW)
        assert lapsed.ease == 2.1
        assert lapsed.interval_days == 0.25

        later = NOW + timedelta(hours=6)
        r = transition(lapsed, Grade.GOOD, later)
        assert r.ease == 2.15
        assert r.interval_days == 1
        assert r.due == later + timedelta(days=1)
        assert r.lapses == 1

    def test_lapses_keep_counting(self):
        s = state()
        for _ in range(3):
            s = transition(s, Grade.GOOD, NOW)
            s = transition(s, Grade.AGAIN, NOW)
        assert s.lapses == 3
        assert s.reps == 0


# ── Ease bounds ───────────────────────────────────────────────

class TestEaseBounds:
    def test_floor(self):
        s = state()
        for _ in range(20):
            s = transition(s, Grade.AGAIN, NOW)
        assert s.ease == MIN_EASE

    def test_ceiling(self):
        s = state()
        for _ in range(20):
            s = transition(s, Grade.EASY, NOW)
        assert s.ease == MAX_EASE

    def test_random_sequences_stay_in_bounds(self):
        rng = random.Random(7)
        for _ in range(200):
            s = state()
            for _ in range(10):
                s = transition(s, rng.choice(list(Grade)), NOW)
                assert MIN_EASE <= s.ease <= MAX_EASE
                assert s.due == NOW + timedelta(days=s.interval_days)

    def test_clamp_rounds(self):
        assert clamp_ease(2.3 + 0.05) == 2.35
        assert clamp_ease(0.5) == MIN_EASE
        assert clamp_ease(9) == MAX_EASE


# ── Invalid input ─────────────────────────────────────────────

class TestInvalid:
    @pytest.mark.parametrize('grade', ['hard', '', 'GOOD', None])
    def test_unknown_grade_raises(self, grade):
        with pytest.raises(ValueError):
            transition(state(), grade, NOW)


# ── Preview & formatting ──────────────────────────────────────

class TestPreview:
    def test_fresh_card(self):
        assert preview_intervals(state(), NOW) == {
            Grade.AGAIN: 0.25,
            Grade.GOOD: 1.0,
            Grade.EASY: 2.0,
        }

    @pytest.mark.parametrize('days, label', [
        (0.25, '6h'),
        (0.001, '1h'),
        (1, '1d'),
        (12.4, '12d'),
        (60, '2mo'),
        (438, '1.2y'),
    ])
    def test_format_interval(self, days, label):
        assert format_interval(days) == label
