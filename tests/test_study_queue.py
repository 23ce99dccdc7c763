"""
Tests for utils/study_queue.py: pure Python, cards built in memory.
"""
import random
from datetime import datetime, timedelta, timezone

import pytest

from utils.models import Card, ReviewState
from utils.study_queue import build_study_queue, count_due, count_new

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Shared helper ─────────────────────────────────────────────

def card(n, due_in_days=0.0, reps=0):
    return Card(
        id=f'{n:032x}',
        deck_id='d' * 32,
        english=f'word {n}',
        german=f'Wort {n}',
        created_at=NOW,
        srs=ReviewState(due=NOW + timedelta(days=due_in_days), reps=reps),
    )


def ids(cards):
    return [c.id for c in cards]


# ── Size & uniqueness ─────────────────────────────────────────

class TestSize:
    @pytest.mark.parametrize('count, goal', [(3, 2), (3, 3), (3, 10), (1, 1), (0, 5)])
    def test_length_is_min_of_goal_and_cards(self, count, goal):
        cards = [card(i) for i in range(count)]
        queue = build_study_queue(cards, goal, NOW, random.Random(1))
        assert len(queue) == min(goal, count)

    def test_no_duplicates(self):
        cards = [card(i, due_in_days=i - 5, reps=1) for i in range(10)]
        queue = build_study_queue(cards + cards[:3], 20, NOW, random.Random(1))
        assert len(set(ids(queue))) == len(queue) == 10

    def test_goal_below_one_raises(self):
        with pytest.raises(ValueError):
            build_study_queue([card(1)], 0, NOW, random.Random(1))


# ── Selection ─────────────────────────────────────────────────

class TestSelection:
    def test_due_cards_win_places(self):
        due = [card(i, due_in_days=-1, reps=2) for i in range(3)]
        later = [card(i + 10, due_in_days=5, reps=2) for i in range(5)]
        queue = build_study_queue(later + due, 3, NOW, random.Random(3))
        assert sorted(ids(queue)) == sorted(ids(due))

    def test_top_up_prefers_unseen_then_soonest(self):
        due = card(1, due_in_days=-1, reps=1)
        soon = card(2, due_in_days=1, reps=1)
        far = card(3, due_in_days=30, reps=1)
        fresh_later = card(4, due_in_days=2, reps=0)
        queue = build_study_queue([far, soon, fresh_later, due], 3, NOW, random.Random(5))
        assert sorted(ids(queue)) == sorted(ids([due, fresh_later, soon]))

    def test_due_at_exactly_now_counts(self):
        exact = card(1, due_in_days=0, reps=1)
        later = card(2, due_in_days=1, reps=1)
        queue = build_study_queue([later, exact], 1, NOW, random.Random(1))
        assert ids(queue) == [exact.id]


# ── Randomness ────────────────────────────────────────────────

class TestOrder:
    def test_same_seed_same_order(self):
        cards = [card(i) for i in range(15)]
        a = build_study_queue(cards, 10, NOW, random.Random(99))
        b = build_study_queue(cards, 10, NOW, random.Random(99))
        assert ids(a) == ids(b)

    def test_order_is_shuffled(self):
        cards = [card(i) for i in range(15)]
        orders = {tuple(ids(build_study_queue(cards, 15, NOW, random.Random(seed)))) for seed in range(5)}
        assert len(orders) > 1

    def test_input_not_mutated(self):
        cards = [card(i) for i in range(5)]
        before = ids(cards)
        build_study_queue(cards, 5, NOW, random.Random(1))
        assert ids(cards) == before


# ── Counters ──────────────────────────────────────────────────

class TestCounters:
    def test_count_due_and_new(self):
        cards = [card(1), card(2, due_in_days=1, reps=1), card(3, due_in_days=-2, reps=3)]
        assert count_due(cards, NOW) == 2
        assert count_new(cards) == 1
