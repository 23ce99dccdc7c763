import html
import logging
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

import database.database as db
from database.errors import NotFound, ValidationError
from handlers.start import build_main_menu, force_start
from utils.constants import DeckState, DECK_NAME_MAX, ID_PATTERN, MENU_BUTTON
from utils.models import Card
from utils.study_queue import count_due, count_new
from utils.telegram_helpers import get_app, safe_edit_text, safe_send_text
from utils.utils import german_label, plural, search_cards, truncate

logger = logging.getLogger(__name__)

DECKS_PER_PAGE = 6
CARDS_PER_PAGE = 8
LABEL_MAX = 40
SEARCH_RESULTS_MAX = 20


# ── Deck list ─────────────────────────────────────────────────

def _deck_button(stat: dict[str, Any]) -> InlineKeyboardButton:
    deck = stat['deck']
    due = stat['due_count']
    due_part = f"  \u2757 {due} due" if due > 0 else ""
    label = f"\U0001f4da {truncate(deck.name, LABEL_MAX)} \u00b7 {stat['card_count']}{due_part}"
    return InlineKeyboardButton(label, callback_data=f"deck_open_{deck.id}")


def build_decks_page(stats: list[dict[str, Any]], page: int) -> tuple[str, InlineKeyboardMarkup]:
    total_pages = max(1, (len(stats) + DECKS_PER_PAGE - 1) // DECKS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))

    start = page * DECKS_PER_PAGE
    buttons: list[list[InlineKeyboardButton]] = [
        [_deck_button(s)] for s in stats[start:start + DECKS_PER_PAGE]
    ]

    if total_pages > 1:
        header = f"\U0001f4da My Decks ({page + 1}/{total_pages})"
        nav: list[InlineKeyboardButton] = []
        if page > 0:
            nav.append(InlineKeyboardButton("\u2190", callback_data=f'decks_page_{page - 1}'))
        if page < total_pages - 1:
            nav.append(InlineKeyboardButton("\u2192", callback_data=f'decks_page_{page + 1}'))
        buttons.append(nav)
    elif stats:
        header = "\U0001f4da My Decks"
    else:
        header = "\U0001f4da No decks yet"

    buttons.append([InlineKeyboardButton("\u2795 New deck", callback_data='new_deck')])
    buttons.append([MENU_BUTTON])
    return header, InlineKeyboardMarkup(buttons)


async def my_decks_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    app = get_app(context)
    header, markup = build_decks_page(db.get_deck_stats(app.db_path, now=app.clock()), 0)
    await safe_edit_text(query, header, reply_markup=markup)


async def decks_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    page = int(query.data.split('_')[2])  # decks_page_N
    app = get_app(context)
    header, markup = build_decks_page(db.get_deck_stats(app.db_path, now=app.clock()), page)
    await safe_edit_text(query, header, reply_markup=markup)


async def decks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/decks slash command: send a fresh My Decks list."""
    app = get_app(context)
    header, markup = build_decks_page(db.get_deck_stats(app.db_path, now=app.clock()), 0)
    await safe_send_text(update.message, header, reply_markup=markup)


# ── Deck detail ───────────────────────────────────────────────

async def show_deck_detail(
    query: CallbackQuery,
    context: ContextTypes.DEFAULT_TYPE,
    deck_id: str,
    page: int = 0,
) -> None:
    app = get_app(context)

    try:
        deck = db.get_deck(app.db_path, deck_id)
    except NotFound:
        await safe_edit_text(
            query,
            "Deck not found.",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('My Decks', callback_data='my_decks')]
            ]),
        )
        return

    cards = db.list_cards_by_deck(app.db_path, deck_id)
    total = len(cards)
    total_pages = max(1, (total + CARDS_PER_PAGE - 1) // CARDS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))

    # imports without a deck column land here
    context.user_data['manage_deck_id'] = deck_id
    context.user_data['manage_deck_page'] = page

    summary = (
        f"{plural(total, 'card')} \u2022 {count_due(cards, app.clock())} due "
        f"\u2022 {count_new(cards)} new"
    )
    header = f"<b>\U0001f4da {html.escape(deck.name)}</b>\n<i>{summary}</i>"
    if total_pages > 1:
        header += f"  ({page + 1}/{total_pages})"

    start = page * CARDS_PER_PAGE
    buttons: list[list[InlineKeyboardButton]] = [
        [InlineKeyboardButton(
            truncate(f"{card.english} \u2192 {german_label(card)}", LABEL_MAX),
            callback_data=f'card_info_{card.id}',
        )]
        for card in cards[start:start + CARDS_PER_PAGE]
    ]

    if total_pages > 1:
        nav: list[InlineKeyboardButton] = []
        if page > 0:
            nav.append(InlineKeyboardButton('\u2190', callback_data=f'deck_page_{deck_id}_{page - 1}'))
        if page < total_pages - 1:
            nav.append(InlineKeyboardButton('\u2192', callback_data=f'deck_page_{deck_id}_{page + 1}'))
        buttons.append(nav)

    buttons.append([
        InlineKeyboardButton('\u2795 Add word', callback_data=f'card_add_{deck_id}'),
        InlineKeyboardButton('\U0001f9e0 Study', callback_data=f'study_deck_{deck_id}'),
        InlineKeyboardButton('\U0001f50d Search', callback_data=f'deck_search_{deck_id}'),
    ])
    buttons.append([
        InlineKeyboardButton('\u270f\ufe0f Rename', callback_data=f'deck_rename_{deck_id}'),
        InlineKeyboardButton('\U0001f5d1\ufe0f Delete', callback_data=f'deck_delete_{deck_id}'),
        InlineKeyboardButton('\U0001f4e4 CSV', callback_data=f'export_deck_{deck_id}'),
    ])
    buttons.append([InlineKeyboardButton('My Decks', callback_data='my_decks')])

    await safe_edit_text(query, header, reply_markup=InlineKeyboardMarkup(buttons))


async def deck_open(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_')[2]  # deck_open_<id>
    await show_deck_detail(query, context, deck_id)


async def deck_cards_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    parts = query.data.split('_')  # deck_page_<id>_<page>
    await show_deck_detail(query, context, parts[2], int(parts[3]))


# ── Delete ────────────────────────────────────────────────────

async def deck_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_')[2]  # deck_delete_<id>
    app = get_app(context)

    try:
        deck = db.get_deck(app.db_path, deck_id)
    except NotFound:
        await safe_edit_text(query, "Deck not found.", reply_markup=InlineKeyboardMarkup([[MENU_BUTTON]]))
        return

    count = len(db.list_cards_by_deck(app.db_path, deck_id))
    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete <b>{html.escape(deck.name)}</b> and its {plural(count, 'card')}?\n\n"
        f"<i>This can't be undone.</i>",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f'deck_delete_yes_{deck_id}'),
                InlineKeyboardButton('Cancel', callback_data=f'deck_open_{deck_id}'),
            ],
        ]),
    )


async def deck_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_')[3]  # deck_delete_yes_<id>
    app = get_app(context)

    try:
        removed = db.delete_deck(app.db_path, deck_id)
    except NotFound:
        removed = 0

    context.user_data.pop('manage_deck_id', None)
    context.user_data.pop('manage_deck_page', None)

    header, markup = build_decks_page(db.get_deck_stats(app.db_path, now=app.clock()), 0)
    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Deck deleted ({plural(removed, 'card')} removed)\n\n{header}",
        reply_markup=markup,
    )


# ── Create / rename conversations ─────────────────────────────

def _check_name(text: str | None) -> str | None:
    """Returns an error message, or None when the name is usable."""
    name = (text or '').strip()
    if not name:
        return "\u26a0\ufe0f Deck name can't be empty. Try again:"
    if len(name) > DECK_NAME_MAX:
        return f"\u26a0\ufe0f Too long \u2014 {DECK_NAME_MAX} characters max. Try again:"
    return None


async def create_deck_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, "\u270f\ufe0f Name for the new deck:")
    return DeckState.CREATING_DECK


async def create_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    error = _check_name(update.message.text)
    if error:
        await safe_send_text(update.message, error)
        return DeckState.CREATING_DECK

    app = get_app(context)
    name = update.message.text.strip()
    duplicate = any(d.name.casefold() == name.casefold() for d in db.list_decks(app.db_path))

    try:
        deck = db.create_deck(app.db_path, name)
    except ValidationError as e:
        await safe_send_text(update.message, f"\u26a0\ufe0f {html.escape(str(e))}. Try again:")
        return DeckState.CREATING_DECK

    note = "\n<i>Heads up: another deck already has this name.</i>" if duplicate else ""
    await safe_send_text(
        update.message,
        f"\u2705 Deck <b>{html.escape(deck.name)}</b> created!{note}",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\u2795 Add word', callback_data=f'card_add_{deck.id}')],
            [InlineKeyboardButton('\U0001f4da Open deck', callback_data=f'deck_open_{deck.id}')],
        ]),
    )
    return ConversationHandler.END


async def start_rename_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_')[2]  # deck_rename_<id>
    context.user_data['renaming_deck_id'] = deck_id
    await safe_edit_text(query, "\u270f\ufe0f New name for the deck:")
    return DeckState.RENAME_DECK


async def receive_rename(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    error = _check_name(update.message.text)
    if error:
        await safe_send_text(update.message, error)
        return DeckState.RENAME_DECK

    deck_id = context.user_data.pop('renaming_deck_id', None)
    app = get_app(context)

    try:
        deck = db.rename_deck(app.db_path, deck_id, update.message.text)
    except NotFound:
        await safe_send_text(
            update.message,
            "\u26a0\ufe0f That deck no longer exists.",
            reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton('My Decks', callback_data='my_decks')]]),
        )
        return ConversationHandler.END

    await safe_send_text(
        update.message,
        f"\u2714\ufe0f Renamed to <b>{html.escape(deck.name)}</b>",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\U0001f4da Open deck', callback_data=f'deck_open_{deck.id}')]
        ]),
    )
    return ConversationHandler.END


async def cancel_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop('renaming_deck_id', None)
    context.user_data.pop('searching_deck_id', None)

    text, markup = build_main_menu(get_app(context))
    await safe_send_text(update.message, text, reply_markup=markup)
    return ConversationHandler.END


# ── Search ────────────────────────────────────────────────────

def build_search_results(cards: list[Card], text: str, deck_id: str | None = None) -> tuple[str, InlineKeyboardMarkup]:
    """Result screen for `text`: one card_info button per match, capped at SEARCH_RESULTS_MAX."""
    matches = search_cards(cards, text)
    header = f"\U0001f50d <b>{html.escape(text.strip())}</b>"

    if not matches:
        header += "\n\nNo matches."
    else:
        header += f"\n<i>{len(matches)} match{'es' if len(matches) != 1 else ''}</i>"
        if len(matches) > SEARCH_RESULTS_MAX:
            header += f" <i>(first {SEARCH_RESULTS_MAX} shown)</i>"

    buttons = [
        [InlineKeyboardButton(
            truncate(f"{card.english} \u2192 {german_label(card)}", LABEL_MAX),
            callback_data=f'card_info_{card.id}',
        )]
        for card in matches[:SEARCH_RESULTS_MAX]
    ]
    if deck_id:
        buttons.append([InlineKeyboardButton('\u2190 Back to deck', callback_data=f'deck_open_{deck_id}')])
    else:
        buttons.append([InlineKeyboardButton('My Decks', callback_data='my_decks')])
    return header, InlineKeyboardMarkup(buttons)


async def start_search_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_')[2]  # deck_search_<id>
    context.user_data['searching_deck_id'] = deck_id
    await safe_edit_text(query, "\U0001f50d Send a word to look for (english, german, example or notes):")
    return DeckState.SEARCH_DECK


async def receive_search(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    deck_id = context.user_data.pop('searching_deck_id', None)
    app = get_app(context)

    try:
        db.get_deck(app.db_path, deck_id)
    except NotFound:
        await safe_send_text(
            update.message,
            "\u26a0\ufe0f That deck no longer exists.",
            reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton('My Decks', callback_data='my_decks')]]),
        )
        return ConversationHandler.END

    cards = db.list_cards_by_deck(app.db_path, deck_id)
    text, markup = build_search_results(cards, update.message.text, deck_id)
    await safe_send_text(update.message, text, reply_markup=markup)
    return ConversationHandler.END


async def find_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/find <text>: search the deck that's open, or every deck when none is."""
    text = ' '.join(context.args or [])
    if not text.strip():
        await safe_send_text(update.message, "Usage: <code>/find Haus</code>")
        return

    app = get_app(context)
    deck_id = context.user_data.get('manage_deck_id')
    if deck_id:
        try:
            db.get_deck(app.db_path, deck_id)
        except NotFound:
            context.user_data.pop('manage_deck_id', None)
            deck_id = None

    if deck_id:
        cards = db.list_cards_by_deck(app.db_path, deck_id)
    else:
        cards = [card for deck in db.list_decks(app.db_path) for card in db.list_cards_by_deck(app.db_path, deck.id)]

    logger.info(f"User {update.effective_user.id}: /find in {deck_id or 'all decks'}")
    header, markup = build_search_results(cards, text, deck_id)
    await safe_send_text(update.message, header, reply_markup=markup)


# ── ConversationHandlers ──────────────────────────────────────

create_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(create_deck_entry, pattern='^new_deck$')],
    per_message=False,
    states={
        DeckState.CREATING_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, create_deck),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_deck), CommandHandler('start', force_start)],
)

rename_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_rename_deck, pattern=rf'^deck_rename_{ID_PATTERN}$')],
    per_message=False,
    states={
        DeckState.RENAME_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_rename),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_deck), CommandHandler('start', force_start)],
)

search_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_search_deck, pattern=rf'^deck_search_{ID_PATTERN}$')],
    per_message=False,
    states={
        DeckState.SEARCH_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_search),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_deck), CommandHandler('start', force_start)],
)
