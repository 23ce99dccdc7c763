"""
Domain records shared by the store, the scheduler and the study session.

Records are plain dataclasses. The store hands out fresh instances on every
read, so callers are free to keep them around; changes only become durable
through database.put_card / update_card.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from database.errors import ValidationError

ARTICLES = ('der', 'die', 'das')
TEXT_FIELDS = ('english', 'german', 'article', 'plural', 'example', 'notes')

DEFAULT_EASE = 2.3
MIN_EASE = 1.3
MAX_EASE = 3.0

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S.%f'


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """UTC, fixed width, microseconds always present."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass(frozen=True)
class ReviewState:
    due: datetime
    interval_days: float = 0.0
    ease: float = DEFAULT_EASE
    reps: int = 0
    lapses: int = 0

    @classmethod
    def fresh(cls, now: datetime) -> 'ReviewState':
        """New cards are due the moment they are created."""
        return cls(due=now)

    def to_dict(self) -> dict[str, Any]:
        return {
            'due': _iso(self.due),
            'intervalDays': self.interval_days,
            'ease': self.ease,
            'reps': self.reps,
            'lapses': self.lapses,
        }


@dataclass
class Deck:
    id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'createdAt': _iso(self.created_at)}


@dataclass
class Card:
    id: str
    deck_id: str
    english: str
    german: str
    created_at: datetime
    srs: ReviewState
    article: str = ''
    plural: str = ''
    example: str = ''
    notes: str = ''

    @property
    def is_new(self) -> bool:
        return self.srs.reps == 0

    def is_due(self, now: datetime) -> bool:
        return self.srs.due <= now

    def text_fields(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in TEXT_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'deckId': self.deck_id,
            **self.text_fields(),
            'createdAt': _iso(self.created_at),
            'srs': self.srs.to_dict(),
        }


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of the whole collection."""
    version: int
    exported_at: datetime
    decks: tuple[Deck, ...] = field(default_factory=tuple)
    cards: tuple[Card, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            'version': self.version,
            'exportedAt': _iso(self.exported_at),
            'decks': [d.to_dict() for d in self.decks],
            'cards': [c.to_dict() for c in self.cards],
        }


# ── Normalization at the store boundary ───────────────────────

def normalize_deck_name(name: str | None) -> str:
    name = (name or '').strip()
    if not name:
        raise ValidationError("Deck name can't be empty")
    return name


def normalize_card_fields(fields: Mapping[str, Any]) -> dict[str, str]:
    """
    Trim every text field, turn missing/None into '' and validate.

    english and german are required; article must be der/die/das or empty.
    """
    clean = {name: str(fields.get(name) or '').strip() for name in TEXT_FIELDS}
    clean['article'] = clean['article'].lower()

    if not clean['english']:
        raise ValidationError("English can't be empty")
    if not clean['german']:
        raise ValidationError("German can't be empty")
    if clean['article'] and clean['article'] not in ARTICLES:
        raise ValidationError(f"Article must be one of {', '.join(ARTICLES)} (got {clean['article']!r})")

    return clean
