"""
Picks and orders the cards for one study session.

Due cards always come first in line for a place in the session; only when
there are fewer due cards than the goal is the session topped up with cards
that are not due yet (unseen ones first, then the ones due soonest).
The final order is shuffled so sessions don't replay storage order.
"""

import random
from collections.abc import Iterable
from datetime import datetime

from utils.models import Card


def build_study_queue(
    cards: Iterable[Card],
    goal: int,
    now: datetime,
    rng: random.Random,
) -> list[Card]:
    """
    Return at most `goal` distinct cards in session order.

    `rng` is the only source of randomness; pass a seeded random.Random to
    get the same order for the same input.
    """
    if goal < 1:
        raise ValueError(f"Session goal must be at least 1 (got {goal})")

    cards = list(cards)
    due = [c for c in cards if c.is_due(now)]
    not_due = [c for c in cards if not c.is_due(now)]

    queue: list[Card] = []
    seen: set[str] = set()
    for card in due:
        if card.id not in seen:
            queue.append(card)
            seen.add(card.id)

    if len(queue) < goal:
        fresh_not_due = [c for c in not_due if c.is_new]
        soonest = sorted((c for c in not_due if not c.is_new), key=lambda c: c.srs.due)
        for card in fresh_not_due + soonest:
            if len(queue) >= goal:
                break
            if card.id in seen:
                continue
            queue.append(card)
            seen.add(card.id)

    # random.shuffle is Fisher-Yates
    rng.shuffle(queue)
    return queue[:goal]


def count_due(cards: Iterable[Card], now: datetime) -> int:
    return sum(1 for c in cards if c.is_due(now))


def count_new(cards: Iterable[Card]) -> int:
    return sum(1 for c in cards if c.is_new)
