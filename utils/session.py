"""
One interactive study session: Idle -> Active -> Complete.

The session owns only in-memory state (queue, current card, counters).
Every grade goes through the scheduler and is written back with
database.put_card before the session moves on, so a crash mid-session
loses nothing that was already graded.
"""

import logging
from collections import Counter
from dataclasses import replace
from enum import Enum, auto
from typing import TYPE_CHECKING

import database.database as db
from utils.models import ARTICLES, Card
from utils.srs import Grade, transition
from utils.study_queue import build_study_queue

if TYPE_CHECKING:
    from config import AppContext

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = auto()
    ACTIVE = auto()
    COMPLETE = auto()


class StudyMode(str, Enum):
    FLASHCARD = 'flash'
    GENDER_QUIZ = 'gender'


class SessionStateError(RuntimeError):
    """A session command was issued in a state or mode that doesn't allow it."""


class EmptyDeckError(Exception):
    """Tried to study a deck without cards."""


class StudySession:
    def __init__(self, app: 'AppContext'):
        self.app = app
        self.state = SessionState.IDLE
        self.deck_id: str | None = None
        self.mode: StudyMode | None = None
        self.goal = 0
        self.done = 0
        self.queue: list[Card] = []
        self.current: Card | None = None
        self.last_graded: Card | None = None
        self.tally: Counter[Grade] = Counter()
        self.gender_correct = 0
        self._reset_answer()

    # ── Commands ──────────────────────────────────────────────

    def start(self, deck_id: str, mode: StudyMode | str, goal: int) -> Card:
        """Build the queue for `deck_id` and show the first card."""
        mode = StudyMode(mode)
        if goal < 1:
            raise ValueError(f"Session goal must be at least 1 (got {goal})")

        db.get_deck(self.app.db_path, deck_id)
        cards = db.list_cards_by_deck(self.app.db_path, deck_id)
        if not cards:
            raise EmptyDeckError(f"Deck {deck_id} has no cards")

        goal = min(goal, len(cards))
        queue = build_study_queue(cards, goal, now=self.app.clock(), rng=self.app.rng)

        self.state = SessionState.ACTIVE
        self.deck_id = deck_id
        self.mode = mode
        self.goal = goal
        self.done = 0
        self.current = queue.pop(0)
        self.queue = queue
        self.last_graded = None
        self.tally = Counter()
        self.gender_correct = 0
        self._reset_answer()

        logger.info(f"Session started: deck={deck_id} mode={mode.value} goal={goal}")
        return self.current

    def flip(self) -> bool:
        self._require(StudyMode.FLASHCARD)
        self.flipped = not self.flipped
        return self.flipped

    def answer_gender(self, choice: str) -> bool:
        """Record the learner's der/die/das pick. Answering again overwrites."""
        self._require(StudyMode.GENDER_QUIZ)
        choice = (choice or '').strip().lower()
        if choice not in ARTICLES:
            raise ValueError(f"Unknown article {choice!r}")

        article = self.current.article
        self.answered = True
        self.correct = bool(article) and choice == article
        self.choice = choice
        return self.correct

    def reveal(self) -> None:
        """Show the right article without crediting a guess."""
        self._require(StudyMode.GENDER_QUIZ)
        if not self.answered:
            self.answered = True
            self.correct = False

    def grade(self, grade: Grade | str) -> bool:
        """
        Grade the current card and advance.

        Returns False (and changes nothing) in gender quiz mode while the
        learner hasn't answered or revealed yet.
        """
        self._require()
        grade = Grade(grade)

        if self.mode is StudyMode.GENDER_QUIZ and not self.answered:
            return False

        # the queue holds snapshots; edits made since start must survive the write
        card = db.get_card(self.app.db_path, self.current.id)
        graded = replace(card, srs=transition(card.srs, grade, self.app.clock()))
        db.put_card(self.app.db_path, graded)

        self.last_graded = graded
        self.tally[grade] += 1
        if self.mode is StudyMode.GENDER_QUIZ and self.correct:
            self.gender_correct += 1
        self.done += 1

        logger.info(
            f"Card {card.id}: graded {grade.value}, "
            f"interval {graded.srs.interval_days:.2f}d, ease {graded.srs.ease}"
        )

        if self.done >= self.goal or not self.queue:
            self._complete()
        else:
            self.current = self.queue.pop(0)
            self._reset_answer()
        return True

    def skip(self) -> None:
        """
        Drop the current card without grading it, e.g. after it was deleted.

        The card no longer counts towards the goal, so the session ends as
        soon as the remaining goal is met or the queue runs dry.
        """
        self._require()
        skipped = self.current
        self.goal = max(self.done, self.goal - 1)
        logger.info(f"Card {skipped.id}: skipped")

        if self.done >= self.goal or not self.queue:
            self._complete()
        else:
            self.current = self.queue.pop(0)
            self._reset_answer()

    # ── Queries ───────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def is_complete(self) -> bool:
        return self.state is SessionState.COMPLETE

    @property
    def progress(self) -> tuple[int, int]:
        return self.done, self.goal

    @property
    def recalled(self) -> int:
        return self.tally[Grade.GOOD] + self.tally[Grade.EASY]

    # ── Internals ─────────────────────────────────────────────

    def _complete(self) -> None:
        self.state = SessionState.COMPLETE
        self.current = None
        self.queue = []
        self._reset_answer()
        logger.info(f"Session complete: deck={self.deck_id} done={self.done}")

    def _reset_answer(self) -> None:
        self.flipped = False
        self.answered = False
        self.correct = False
        self.choice: str | None = None

    def _require(self, mode: StudyMode | None = None) -> None:
        if self.state is not SessionState.ACTIVE:
            raise SessionStateError(f"No active session (state is {self.state.name})")
        if mode is not None and self.mode is not mode:
            raise SessionStateError(f"Only allowed in {mode.value} mode (session is {self.mode.value})")
