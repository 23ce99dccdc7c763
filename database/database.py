import logging
import sqlite3
import uuid
from contextlib import contextmanager

from database.errors import NotFound, TransactionFailure
from database.schema import deck_schema, card_schema, settings_schema, index_schemas
from utils.models import (
    Card, Deck, ReviewState, Snapshot,
    from_db_time, normalize_card_fields, normalize_deck_name, to_db_time, utc_now,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

STARTER_DECK_NAME = 'Starter'
STARTER_CARD = {
    'english': 'the house',
    'german': 'Haus',
    'article': 'das',
    'plural': 'Häuser',
    'example': 'Das Haus ist groß.',
    'notes': 'Plural changes vowel (Umlaut).',
}


def new_id():
    return uuid.uuid4().hex


# DECKS COMMANDS =============================================

def create_deck(db_path, name, now=None):
    deck = Deck(id=new_id(), name=normalize_deck_name(name), created_at=now or utc_now())
    with get_db(db_path) as conn:
        _insert_deck(conn, deck)
    logger.info(f"Created deck {deck.id} ({deck.name!r})")
    return deck


def get_deck(db_path, deck_id):
    with get_db(db_path, write=False) as conn:
        return _fetch_deck(conn, deck_id)


def rename_deck(db_path, deck_id, name):
    name = normalize_deck_name(name)
    with get_db(db_path) as conn:
        deck = _fetch_deck(conn, deck_id)
        conn.execute('UPDATE decks SET name = ? WHERE id = ?', (name, deck_id))
    deck.name = name
    logger.info(f"Renamed deck {deck_id} to {name!r}")
    return deck


def delete_deck(db_path, deck_id):
    """Remove a deck and all of its cards in one transaction. Returns the card count."""
    with get_db(db_path) as conn:
        _fetch_deck(conn, deck_id)
        removed = conn.execute('DELETE FROM cards WHERE deck_id = ?', (deck_id,)).rowcount
        conn.execute('DELETE FROM decks WHERE id = ?', (deck_id,))
    logger.info(f"Deleted deck {deck_id} with {removed} cards")
    return removed


def list_decks(db_path):
    with get_db(db_path, write=False) as conn:
        rows = conn.execute('SELECT * FROM decks ORDER BY created_at, rowid').fetchall()
    decks = [_row_to_deck(row) for row in rows]
    decks.sort(key=lambda d: d.name.casefold())
    return decks


def get_deck_stats(db_path, now=None):
    """All decks (same order as list_decks) with card, due and new counts."""
    now_text = to_db_time(now or utc_now())
    with get_db(db_path, write=False) as conn:
        rows = conn.execute(
            """SELECT d.id, d.name, d.created_at,
                      COUNT(c.id) AS card_count,
                      SUM(CASE WHEN c.due <= ? THEN 1 ELSE 0 END) AS due_count,
                      SUM(CASE WHEN c.reps = 0 THEN 1 ELSE 0 END) AS new_count
               FROM decks d
               LEFT JOIN cards c ON c.deck_id = d.id
               GROUP BY d.id
               ORDER BY d.created_at, d.rowid
            """,
            (now_text,)
        ).fetchall()

    stats = [
        {
            'deck': _row_to_deck(row),
            'card_count': row['card_count'],
            'due_count': row['due_count'] or 0,
            'new_count': row['new_count'] or 0,
        }
        for row in rows
    ]
    stats.sort(key=lambda s: s['deck'].name.casefold())
    return stats


# CARDS COMMANDS =============================================

def create_card(db_path, deck_id, fields, now=None):
    clean = normalize_card_fields(fields)
    now = now or utc_now()
    card = Card(
        id=new_id(),
        deck_id=deck_id,
        created_at=now,
        srs=ReviewState.fresh(now),
        **clean,
    )
    with get_db(db_path) as conn:
        _fetch_deck(conn, deck_id)
        _insert_card(conn, card)
    logger.info(f"Created card {card.id} in deck {deck_id}")
    return card


def get_card(db_path, card_id):
    with get_db(db_path, write=False) as conn:
        return _fetch_card(conn, card_id)


def update_card(db_path, card_id, fields):
    """Replace the text fields; id, deck and review state stay as they are."""
    clean = normalize_card_fields(fields)
    with get_db(db_path) as conn:
        card = _fetch_card(conn, card_id)
        conn.execute(
            """UPDATE cards
               SET english = ?, german = ?, article = ?, plural = ?, example = ?, notes = ?
               WHERE id = ?
            """,
            (clean['english'], clean['german'], clean['article'],
             clean['plural'], clean['example'], clean['notes'], card_id)
        )
    for name, value in clean.items():
        setattr(card, name, value)
    logger.info(f"Updated card {card_id}")
    return card


def delete_card(db_path, card_id):
    """Idempotent: returns False when the card was already gone."""
    with get_db(db_path) as conn:
        removed = conn.execute('DELETE FROM cards WHERE id = ?', (card_id,)).rowcount
    if removed:
        logger.info(f"Deleted card {card_id}")
    return bool(removed)


def put_card(db_path, card):
    """Full replace of an existing card record, review state included."""
    clean = normalize_card_fields(card.text_fields())
    srs = card.srs
    with get_db(db_path) as conn:
        _fetch_card(conn, card.id)
        _fetch_deck(conn, card.deck_id)
        conn.execute(
            """UPDATE cards
               SET deck_id = ?, english = ?, german = ?, article = ?, plural = ?,
                   example = ?, notes = ?, created_at = ?,
                   due = ?, interval_days = ?, ease = ?, reps = ?, lapses = ?
               WHERE id = ?
            """,
            (card.deck_id, clean['english'], clean['german'], clean['article'],
             clean['plural'], clean['example'], clean['notes'], to_db_time(card.created_at),
             to_db_time(srs.due), srs.interval_days, srs.ease, srs.reps, srs.lapses,
             card.id)
        )
    return Card(id=card.id, deck_id=card.deck_id, created_at=card.created_at, srs=srs, **clean)


def list_cards_by_deck(db_path, deck_id):
    with get_db(db_path, write=False) as conn:
        rows = conn.execute(
            'SELECT * FROM cards WHERE deck_id = ? ORDER BY created_at, rowid',
            (deck_id,)
        ).fetchall()
    return [_row_to_card(row) for row in rows]


def get_due_cards(db_path, deck_id, now=None):
    with get_db(db_path, write=False) as conn:
        rows = conn.execute(
            'SELECT * FROM cards WHERE due <= ? AND deck_id = ? ORDER BY due, rowid',
            (to_db_time(now or utc_now()), deck_id)
        ).fetchall()
    return [_row_to_card(row) for row in rows]


# COLLECTION COMMANDS ========================================

def export_snapshot(db_path, now=None):
    """Both tables read inside one read transaction."""
    with get_db(db_path, write=False) as conn:
        deck_rows = conn.execute('SELECT * FROM decks ORDER BY created_at, rowid').fetchall()
        card_rows = conn.execute('SELECT * FROM cards ORDER BY created_at, rowid').fetchall()
    return Snapshot(
        version=SNAPSHOT_VERSION,
        exported_at=now or utc_now(),
        decks=tuple(_row_to_deck(row) for row in deck_rows),
        cards=tuple(_row_to_card(row) for row in card_rows),
    )


def wipe_all(db_path):
    with get_db(db_path) as conn:
        cards = conn.execute('DELETE FROM cards').rowcount
        decks = conn.execute('DELETE FROM decks').rowcount
    logger.info(f"Wiped {decks} decks and {cards} cards")


def seed_starter_deck(db_path, now=None):
    """Create the 'Starter' deck with one example card if there are no decks at all."""
    now = now or utc_now()
    with get_db(db_path) as conn:
        if conn.execute('SELECT 1 FROM decks LIMIT 1').fetchone():
            return None
        deck = Deck(id=new_id(), name=STARTER_DECK_NAME, created_at=now)
        card = Card(
            id=new_id(),
            deck_id=deck.id,
            created_at=now,
            srs=ReviewState.fresh(now),
            **normalize_card_fields(STARTER_CARD),
        )
        _insert_deck(conn, deck)
        _insert_card(conn, card)
    logger.info("Seeded starter deck")
    return deck


# SETTINGS COMMANDS ==========================================

def get_setting(db_path, key, default=None):
    with get_db(db_path, write=False) as conn:
        row = conn.execute('SELECT value FROM settings WHERE key = ?', (key,)).fetchone()
    return row['value'] if row else default


def set_setting(db_path, key, value):
    with get_db(db_path) as conn:
        conn.execute(
            'INSERT INTO settings (key, value) VALUES (?, ?) '
            'ON CONFLICT(key) DO UPDATE SET value = excluded.value',
            (key, value)
        )


# ROW HELPERS ================================================

def _insert_deck(conn, deck):
    conn.execute(
        'INSERT INTO decks (id, name, created_at) VALUES (?, ?, ?)',
        (deck.id, deck.name, to_db_time(deck.created_at))
    )


def _insert_card(conn, card):
    srs = card.srs
    conn.execute(
        """INSERT INTO cards (id, deck_id, english, german, article, plural, example, notes,
                              due, interval_days, ease, reps, lapses, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (card.id, card.deck_id, card.english, card.german, card.article, card.plural,
         card.example, card.notes, to_db_time(srs.due), srs.interval_days, srs.ease,
         srs.reps, srs.lapses, to_db_time(card.created_at))
    )


def _fetch_deck(conn, deck_id):
    row = conn.execute('SELECT * FROM decks WHERE id = ?', (deck_id,)).fetchone()
    if row is None:
        raise NotFound(f"Deck {deck_id} not found")
    return _row_to_deck(row)


def _fetch_card(conn, card_id):
    row = conn.execute('SELECT * FROM cards WHERE id = ?', (card_id,)).fetchone()
    if row is None:
        raise NotFound(f"Card {card_id} not found")
    return _row_to_card(row)


def _row_to_deck(row):
    return Deck(id=row['id'], name=row['name'], created_at=from_db_time(row['created_at']))


def _row_to_card(row):
    return Card(
        id=row['id'],
        deck_id=row['deck_id'],
        english=row['english'],
        german=row['german'],
        article=row['article'],
        plural=row['plural'],
        example=row['example'],
        notes=row['notes'],
        created_at=from_db_time(row['created_at']),
        srs=ReviewState(
            due=from_db_time(row['due']),
            interval_days=row['interval_days'],
            ease=row['ease'],
            reps=row['reps'],
            lapses=row['lapses'],
        ),
    )


# DB CONNECTION ==============================================

@contextmanager
def get_db(db_path, write=True):
    """
    One connection, one transaction.

    Writers take the lock up front (BEGIN IMMEDIATE); readers get a consistent
    view for the whole block. Any exception rolls everything back; SQLite
    errors are re-raised as TransactionFailure.
    """
    conn = None
    try:
        conn = sqlite3.connect(db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        conn.execute('BEGIN IMMEDIATE' if write else 'BEGIN')
    except sqlite3.Error as e:
        if conn is not None:
            conn.close()
        raise TransactionFailure(f"Could not open transaction on {db_path}: {e}") from e

    try:
        yield conn
        conn.execute('COMMIT')
    except sqlite3.Error as e:
        _rollback(conn)
        raise TransactionFailure(str(e)) from e
    except Exception:
        _rollback(conn)
        raise
    finally:
        conn.close()


def _rollback(conn):
    if conn.in_transaction:
        conn.execute('ROLLBACK')


def init_db(db_path):
    with get_db(db_path) as conn:
        conn.execute(deck_schema)
        conn.execute(card_schema)
        conn.execute(settings_schema)
        for statement in index_schemas:
            conn.execute(statement)
