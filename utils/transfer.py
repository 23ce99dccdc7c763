"""
CSV import/export and JSON backup.

CSV columns: deck, english, german, article, plural, example, notes.
With a header row, columns are matched by name (any order, any subset).
Without one, the order is english, german, article, plural, example, notes.
"""

import csv
import io
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

import database.database as db
from database.errors import ValidationError
from utils.models import TEXT_FIELDS, utc_now

logger = logging.getLogger(__name__)

CSV_COLUMNS = ('deck',) + TEXT_FIELDS
HEADER_MARKERS = ('english', 'german', 'deck')


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    created_decks: list[str] = field(default_factory=list)


def parse_csv(text: str) -> list[list[str]]:
    """Rows of the file, dropping rows where every cell is blank."""
    reader = csv.reader(io.StringIO(text.lstrip('\ufeff')))
    return [row for row in reader if any(cell.strip() for cell in row)]


def _row_fields(row: list[str], header: list[str] | None) -> dict[str, str]:
    if header is None:
        return {name: (row[i] if i < len(row) else '') for i, name in enumerate(TEXT_FIELDS)}
    return {
        name: (row[header.index(name)] if header.index(name) < len(row) else '')
        for name in CSV_COLUMNS if name in header
    }


def import_csv(db_path: str, text: str, fallback_deck_id: str | None = None) -> ImportResult:
    """
    Add every usable row as a card.

    Rows naming a deck go to the existing deck with that name (case-insensitive)
    or to a deck created for this import. Other rows go to `fallback_deck_id`.
    Rows with no deck, a blank english/german or a bad article are skipped.
    """
    result = ImportResult()
    rows = parse_csv(text)
    if not rows:
        return result

    first = [cell.strip().lower() for cell in rows[0]]
    has_header = any(marker in first for marker in HEADER_MARKERS)
    header = first if has_header else None
    data_rows = rows[1:] if has_header else rows

    decks_by_name = {d.name.casefold(): d.id for d in db.list_decks(db_path)}

    for row in data_rows:
        fields = _row_fields(row, header)
        deck_name = fields.pop('deck', '').strip()

        deck_id = fallback_deck_id
        if deck_name:
            deck_id = decks_by_name.get(deck_name.casefold())
            if deck_id is None:
                deck = db.create_deck(db_path, deck_name)
                decks_by_name[deck_name.casefold()] = deck.id
                result.created_decks.append(deck.name)
                deck_id = deck.id

        if not deck_id:
            result.skipped += 1
            continue

        try:
            db.create_card(db_path, deck_id, fields)
        except ValidationError as e:
            logger.info(f"Skipping CSV row {row!r}: {e}")
            result.skipped += 1
            continue
        result.imported += 1

    logger.info(
        f"CSV import: {result.imported} imported, {result.skipped} skipped, "
        f"{len(result.created_decks)} decks created"
    )
    return result


def export_deck_csv(db_path: str, deck_id: str) -> tuple[str, str]:
    """Returns (filename, csv text) for one deck."""
    deck = db.get_deck(db_path, deck_id)
    cards = db.list_cards_by_deck(db_path, deck_id)

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n')
    writer.writerow(CSV_COLUMNS)
    for card in cards:
        writer.writerow([deck.name] + [getattr(card, name) for name in TEXT_FIELDS])

    return f"{safe_filename(deck.name)}.csv", buf.getvalue()


def backup_json(db_path: str, now: datetime | None = None) -> tuple[str, str]:
    """Returns (filename, json text) of the whole collection."""
    snapshot = db.export_snapshot(db_path, now=now or utc_now())
    name = f"german-flashcards-backup-{snapshot.exported_at.date().isoformat()}.json"
    return name, json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)


def safe_filename(name: str) -> str:
    return re.sub(r'[^\w\- ]+', '', name).strip() or 'deck'
