import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
from database.errors import NotFound
from utils.constants import MENU_BUTTON
from utils.telegram_helpers import get_app, safe_edit_text, safe_send_document, safe_send_text
from utils.transfer import backup_json, export_deck_csv, import_csv
from utils.utils import get_buttons, plural

logger = logging.getLogger(__name__)

CSV_MAX_BYTES = 1024 * 1024


# ── Import ────────────────────────────────────────────────────

def _fallback_deck(context: ContextTypes.DEFAULT_TYPE, caption: str | None) -> str | None:
    """
    Deck for rows without a deck column: the deck named in the caption
    (created if needed), else the deck the user last opened.
    """
    app = get_app(context)
    name = (caption or '').strip()
    if name:
        for deck in db.list_decks(app.db_path):
            if deck.name.casefold() == name.casefold():
                return deck.id
        return db.create_deck(app.db_path, name).id

    deck_id = context.user_data.get('manage_deck_id')
    if deck_id:
        try:
            return db.get_deck(app.db_path, deck_id).id
        except NotFound:
            context.user_data.pop('manage_deck_id', None)
    return None


async def receive_csv(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    document = update.message.document
    if document.file_size and document.file_size > CSV_MAX_BYTES:
        await safe_send_text(update.message, "\u26a0\ufe0f That file is too big (1 MB max).")
        return

    tg_file = await document.get_file()
    raw = await tg_file.download_as_bytearray()
    try:
        text = bytes(raw).decode('utf-8-sig')
    except UnicodeDecodeError:
        await safe_send_text(update.message, "\u26a0\ufe0f Couldn't read that file. Save it as UTF-8 CSV and try again.")
        return

    app = get_app(context)
    fallback = _fallback_deck(context, update.message.caption)
    result = import_csv(app.db_path, text, fallback_deck_id=fallback)

    lines = [f"\U0001f4e5 Imported {plural(result.imported, 'word')}"]
    if result.created_decks:
        names = ', '.join(html.escape(n) for n in result.created_decks)
        lines.append(f"\U0001f4da New decks: {names}")
    if result.skipped:
        lines.append(f"\u26a0\ufe0f Skipped {plural(result.skipped, 'row')}")
        if fallback is None:
            lines.append(
                "<i>Rows without a deck column need a target deck: open a deck first, "
                "or put the deck name in the file's caption.</i>"
            )

    await safe_send_text(
        update.message,
        '\n'.join(lines),
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks')],
        ]),
    )


# ── Export ────────────────────────────────────────────────────

async def export_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/export: pick a deck to download as CSV."""
    decks = db.list_decks(get_app(context).db_path)
    if not decks:
        await safe_send_text(update.message, "\U0001f4ad No decks to export.")
        return

    buttons = get_buttons([(d.id, f"\U0001f4e4 {d.name}") for d in decks], 'export_deck')
    buttons.append([MENU_BUTTON])
    await safe_send_text(update.message, "Which deck?", reply_markup=InlineKeyboardMarkup(buttons))


async def export_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_')[2]  # export_deck_<id>

    try:
        filename, content = export_deck_csv(get_app(context).db_path, deck_id)
    except NotFound:
        await safe_edit_text(query, "Deck not found.")
        return

    rows = content.count('\n') - 1
    await safe_send_document(query.message, content, filename, caption=f"\U0001f4e4 {plural(rows, 'word')}")


async def backup_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/backup: the whole collection as JSON."""
    app = get_app(context)
    filename, content = backup_json(app.db_path, now=app.clock())
    await safe_send_document(update.message, content, filename, caption="\U0001f4be Full backup")


# ── Reset ─────────────────────────────────────────────────────

async def reset_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(
        update.message,
        "\u26a0\ufe0f This deletes <b>all</b> decks and words. Continue?",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('Yes, delete everything', callback_data='reset_yes'),
            InlineKeyboardButton('Cancel', callback_data='main_menu'),
        ]]),
    )


async def reset_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    app = get_app(context)
    db.wipe_all(app.db_path)
    app.sessions.clear()
    context.user_data.clear()
    db.seed_starter_deck(app.db_path, now=app.clock())

    await safe_edit_text(
        query,
        "\U0001f5d1\ufe0f All data deleted (starter deck restored).",
        reply_markup=InlineKeyboardMarkup([[MENU_BUTTON]]),
    )
