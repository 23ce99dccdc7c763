"""
Tests for database/database.py.

Uses a real SQLite file in a pytest tmp_path so every test gets an isolated DB.
No Telegram objects, no async: pure DB logic.
"""
import sqlite3
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

import database.database as db
from database.errors import NotFound, TransactionFailure, ValidationError
from utils.models import DEFAULT_EASE

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Helpers ───────────────────────────────────────────────────

def _raw(db_path: str, sql: str, params=()):
    """Run a raw query against the test DB and return fetchall."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def _exec(db_path: str, sql: str):
    conn = sqlite3.connect(db_path)
    conn.executescript(sql)
    conn.close()


def _word(english='the house', german='Haus', **extra):
    return {'english': english, 'german': german, **extra}


# ── Decks ─────────────────────────────────────────────────────

class TestDecks:
    def test_create_and_get(self, tdb):
        deck = db.create_deck(tdb, 'Verbs', now=NOW)
        got = db.get_deck(tdb, deck.id)
        assert got.id == deck.id
        assert got.name == 'Verbs'
        assert got.created_at == NOW

    def test_name_is_trimmed(self, tdb):
        assert db.create_deck(tdb, '  Food  ').name == 'Food'

    def test_blank_name_rejected(self, tdb):
        with pytest.raises(ValidationError):
            db.create_deck(tdb, '   ')
        assert db.list_decks(tdb) == []

    def test_ids_are_unique(self, tdb):
        ids = {db.create_deck(tdb, f'Deck {i}').id for i in range(20)}
        assert len(ids) == 20

    def test_get_missing_raises(self, tdb):
        with pytest.raises(NotFound):
            db.get_deck(tdb, 'f' * 32)

    def test_rename(self, tdb):
        deck = db.create_deck(tdb, 'Old')
        renamed = db.rename_deck(tdb, deck.id, ' New ')
        assert renamed.name == 'New'
        assert db.get_deck(tdb, deck.id).name == 'New'

    def test_rename_blank_keeps_old_name(self, tdb):
        deck = db.create_deck(tdb, 'Old')
        with pytest.raises(ValidationError):
            db.rename_deck(tdb, deck.id, '')
        assert db.get_deck(tdb, deck.id).name == 'Old'

    def test_rename_missing_raises(self, tdb):
        with pytest.raises(NotFound):
            db.rename_deck(tdb, 'f' * 32, 'Name')

    def test_list_sorted_case_insensitive(self, tdb):
        for name in ('banana', 'Apple', 'cherry'):
            db.create_deck(tdb, name)
        assert [d.name for d in db.list_decks(tdb)] == ['Apple', 'banana', 'cherry']

    def test_duplicate_names_allowed(self, tdb):
        db.create_deck(tdb, 'Same')
        db.create_deck(tdb, 'Same')
        assert len(db.list_decks(tdb)) == 2


# ── Deck deletion ─────────────────────────────────────────────

class TestDeleteDeck:
    def test_removes_deck_and_cards(self, tdb):
        deck = db.create_deck(tdb, 'Gone')
        other = db.create_deck(tdb, 'Kept')
        for i in range(3):
            db.create_card(tdb, deck.id, _word(f'e{i}', f'g{i}'))
        kept = db.create_card(tdb, other.id, _word())

        assert db.delete_deck(tdb, deck.id) == 3

        with pytest.raises(NotFound):
            db.get_deck(tdb, deck.id)
        assert _raw(tdb, 'SELECT * FROM cards WHERE deck_id = ?', (deck.id,)) == []
        assert db.get_card(tdb, kept.id).deck_id == other.id

    def test_missing_deck_raises(self, tdb):
        with pytest.raises(NotFound):
            db.delete_deck(tdb, 'f' * 32)

    def test_failure_midway_changes_nothing(self, tdb):
        deck = db.create_deck(tdb, 'Doomed')
        card = db.create_card(tdb, deck.id, _word())
        _exec(tdb, """
            CREATE TRIGGER fail_deck_delete BEFORE DELETE ON decks
            BEGIN SELECT RAISE(ABORT, 'boom'); END;
        """)

        with pytest.raises(TransactionFailure):
            db.delete_deck(tdb, deck.id)

        # the card delete ran first and was rolled back with the rest
        assert db.get_deck(tdb, deck.id).name == 'Doomed'
        assert db.get_card(tdb, card.id).id == card.id


# ── Cards ─────────────────────────────────────────────────────

class TestCards:
    def test_create_defaults(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word(), now=NOW)
        assert card.srs.reps == 0
        assert card.srs.lapses == 0
        assert card.srs.interval_days == 0
        assert card.srs.ease == DEFAULT_EASE
        assert card.srs.due == NOW
        assert card.created_at == NOW
        assert card.is_new

    def test_fields_trimmed_and_article_lowercased(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, {
            'english': ' the dog ', 'german': ' Hund', 'article': ' DER ', 'plural': None,
        })
        got = db.get_card(tdb, card.id)
        assert got.english == 'the dog'
        assert got.german == 'Hund'
        assert got.article == 'der'
        assert got.plural == ''

    @pytest.mark.parametrize('fields', [
        {'english': '', 'german': 'Haus'},
        {'english': 'house', 'german': '   '},
        {'english': 'house', 'german': 'Haus', 'article': 'dem'},
    ])
    def test_invalid_fields_rejected(self, tdb, fields):
        deck = db.create_deck(tdb, 'D')
        with pytest.raises(ValidationError):
            db.create_card(tdb, deck.id, fields)
        assert db.list_cards_by_deck(tdb, deck.id) == []

    def test_create_in_missing_deck_raises(self, tdb):
        with pytest.raises(NotFound):
            db.create_card(tdb, 'f' * 32, _word())

    def test_get_missing_raises(self, tdb):
        with pytest.raises(NotFound):
            db.get_card(tdb, 'f' * 32)

    def test_update_keeps_review_state(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word(), now=NOW)
        db.put_card(tdb, replace(card, srs=replace(card.srs, reps=4, ease=2.5)))

        updated = db.update_card(tdb, card.id, _word('the home', 'Zuhause', article='das'))
        assert updated.english == 'the home'

        got = db.get_card(tdb, card.id)
        assert got.german == 'Zuhause'
        assert got.article == 'das'
        assert got.srs.reps == 4
        assert got.srs.ease == 2.5
        assert got.deck_id == deck.id

    def test_update_invalid_leaves_card(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word())
        with pytest.raises(ValidationError):
            db.update_card(tdb, card.id, _word(german=''))
        assert db.get_card(tdb, card.id).german == 'Haus'

    def test_delete_is_idempotent(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word())
        assert db.delete_card(tdb, card.id) is True
        assert db.delete_card(tdb, card.id) is False
        with pytest.raises(NotFound):
            db.get_card(tdb, card.id)

    def test_list_in_creation_order(self, tdb):
        deck = db.create_deck(tdb, 'D')
        ids = [db.create_card(tdb, deck.id, _word(f'e{i}', f'g{i}'), now=NOW).id for i in range(5)]
        assert [c.id for c in db.list_cards_by_deck(tdb, deck.id)] == ids

    def test_list_only_that_deck(self, tdb):
        a = db.create_deck(tdb, 'A')
        b = db.create_deck(tdb, 'B')
        db.create_card(tdb, a.id, _word())
        db.create_card(tdb, b.id, _word())
        assert all(c.deck_id == a.id for c in db.list_cards_by_deck(tdb, a.id))
        assert db.list_cards_by_deck(tdb, 'f' * 32) == []


# ── put_card ──────────────────────────────────────────────────

class TestPutCard:
    def test_full_replace_roundtrip(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word(), now=NOW)
        srs = replace(card.srs, due=NOW + timedelta(days=3), interval_days=3.0, ease=2.45, reps=2, lapses=1)

        db.put_card(tdb, replace(card, srs=srs, notes='tricky'))

        got = db.get_card(tdb, card.id)
        assert got.srs == srs
        assert got.notes == 'tricky'

    def test_missing_card_raises(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word())
        db.delete_card(tdb, card.id)
        with pytest.raises(NotFound):
            db.put_card(tdb, card)

    def test_missing_deck_raises(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word())
        with pytest.raises(NotFound):
            db.put_card(tdb, replace(card, deck_id='f' * 32))
        assert db.get_card(tdb, card.id).deck_id == deck.id

    def test_store_returns_copies(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word())
        got = db.get_card(tdb, card.id)
        got.german = 'changed'
        assert db.get_card(tdb, card.id).german == 'Haus'


# ── Due cards & stats ─────────────────────────────────────────

class TestDue:
    def test_due_is_inclusive(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word(), now=NOW)
        assert [c.id for c in db.get_due_cards(tdb, deck.id, now=NOW)] == [card.id]
        assert db.get_due_cards(tdb, deck.id, now=NOW - timedelta(microseconds=1)) == []

    def test_future_card_not_due(self, tdb):
        deck = db.create_deck(tdb, 'D')
        card = db.create_card(tdb, deck.id, _word(), now=NOW)
        db.put_card(tdb, replace(card, srs=replace(card.srs, due=NOW + timedelta(days=1), reps=1)))
        assert db.get_due_cards(tdb, deck.id, now=NOW) == []

    def test_deck_stats(self, tdb):
        deck = db.create_deck(tdb, 'D')
        db.create_deck(tdb, 'Empty')
        fresh = db.create_card(tdb, deck.id, _word(), now=NOW)
        later = db.create_card(tdb, deck.id, _word('b', 'B'), now=NOW)
        db.put_card(tdb, replace(later, srs=replace(later.srs, due=NOW + timedelta(days=2), reps=1)))

        stats = {s['deck'].name: s for s in db.get_deck_stats(tdb, now=NOW)}
        assert stats['D']['card_count'] == 2
        assert stats['D']['due_count'] == 1
        assert stats['D']['new_count'] == 1
        assert stats['Empty']['card_count'] == 0
        assert stats['Empty']['due_count'] == 0
        assert fresh.is_due(NOW)


# ── Collection ────────────────────────────────────────────────

class TestCollection:
    def test_snapshot_has_everything(self, tdb):
        deck = db.create_deck(tdb, 'D', now=NOW)
        card = db.create_card(tdb, deck.id, _word(), now=NOW)

        snap = db.export_snapshot(tdb, now=NOW)
        assert snap.version == db.SNAPSHOT_VERSION
        assert snap.exported_at == NOW
        assert [d.id for d in snap.decks] == [deck.id]
        assert [c.id for c in snap.cards] == [card.id]

    def test_snapshot_of_empty_store(self, tdb):
        snap = db.export_snapshot(tdb)
        assert snap.decks == ()
        assert snap.cards == ()

    def test_wipe_all(self, tdb):
        deck = db.create_deck(tdb, 'D')
        db.create_card(tdb, deck.id, _word())
        db.wipe_all(tdb)
        assert db.list_decks(tdb) == []
        assert _raw(tdb, 'SELECT * FROM cards') == []

    def test_seed_only_when_empty(self, tdb):
        deck = db.seed_starter_deck(tdb, now=NOW)
        assert deck.name == db.STARTER_DECK_NAME
        cards = db.list_cards_by_deck(tdb, deck.id)
        assert len(cards) == 1
        assert cards[0].german == 'Haus'
        assert cards[0].article == 'das'

        assert db.seed_starter_deck(tdb) is None
        assert len(db.list_decks(tdb)) == 1

    def test_locked_database_raises_transaction_failure(self, tdb):
        deck = db.create_deck(tdb, 'D')
        blocker = sqlite3.connect(tdb, timeout=0, isolation_level=None)
        blocker.execute('BEGIN EXCLUSIVE')
        try:
            with pytest.raises(TransactionFailure):
                db.rename_deck(tdb, deck.id, 'Blocked')
        finally:
            blocker.execute('ROLLBACK')
            blocker.close()
        assert db.get_deck(tdb, deck.id).name == 'D'


# ── Settings ──────────────────────────────────────────────────

class TestSettings:
    def test_default_when_unset(self, tdb):
        assert db.get_setting(tdb, 'front') is None
        assert db.get_setting(tdb, 'front', 'english') == 'english'

    def test_set_and_overwrite(self, tdb):
        db.set_setting(tdb, 'front', 'german')
        db.set_setting(tdb, 'front', 'english')
        assert db.get_setting(tdb, 'front') == 'english'
