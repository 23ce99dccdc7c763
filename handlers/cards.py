import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, Message
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

import database.database as db
from database.errors import NotFound, ValidationError
from handlers.decks import show_deck_detail
from handlers.start import build_main_menu, force_start
from utils.constants import CardState, ID_PATTERN, PREVIEW_BUTTONS
from utils.srs import format_interval
from utils.telegram_helpers import get_app, safe_edit_text, safe_send_text
from utils.utils import card_details, parse_card_text

logger = logging.getLogger(__name__)

FIELD_MAX = 500

FORMAT_HINT = (
    "<i>One line, pipe separated:</i>\n"
    "<code>the house | Haus | das | Häuser | Das Haus ist groß. | notes</code>\n"
    "<i>or one field per line in the same order. "
    "Only english and german are required.</i>"
)


def _validate_fields(fields: dict[str, str]) -> str | None:
    """Chat-side checks before the store sees the card. Returns an error message or None."""
    if not fields['english'] or not fields['german']:
        return "\u26a0\ufe0f A word needs at least english and german.\n\n" + FORMAT_HINT
    if any(len(value) > FIELD_MAX for value in fields.values()):
        return f"\u26a0\ufe0f Too long \u2014 each field can be up to {FIELD_MAX} characters. Try again:"
    return None


async def _preview(message: Message, context: ContextTypes.DEFAULT_TYPE, deck_name: str) -> None:
    fields = context.user_data.get('cur_card', {})
    text = (
        f"<b>\U0001f4cb Preview</b>\n\n"
        f"{card_details(fields)}\n\n"
        f"<i>\U0001f4c1 {html.escape(deck_name)}</i>"
    )
    await safe_send_text(message, text, reply_markup=InlineKeyboardMarkup(PREVIEW_BUTTONS))


def _clear_add_state(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.pop('cur_card', None)
    context.user_data.pop('cur_deck_id', None)
    context.user_data.pop('editing_card_id', None)


# ── Add card ──────────────────────────────────────────────────

async def add_card_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.split('_')[2]  # card_add_<id>
    app = get_app(context)
    try:
        deck = db.get_deck(app.db_path, deck_id)
    except NotFound:
        await safe_edit_text(query, "\u26a0\ufe0f That deck no longer exists.")
        return ConversationHandler.END

    context.user_data['cur_deck_id'] = deck_id
    await safe_edit_text(
        query,
        f"\U0001f4dd Send me a word for <b>{html.escape(deck.name)}</b>\n\n{FORMAT_HINT}",
    )
    return CardState.AWAITING_CONTENT


async def get_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    fields = parse_card_text(update.message.text)
    error = _validate_fields(fields)
    if error:
        await safe_send_text(update.message, error)
        return CardState.AWAITING_CONTENT

    app = get_app(context)
    try:
        deck = db.get_deck(app.db_path, context.user_data.get('cur_deck_id'))
    except NotFound:
        _clear_add_state(context)
        await safe_send_text(update.message, "\u26a0\ufe0f That deck no longer exists.")
        return ConversationHandler.END

    context.user_data['cur_card'] = fields
    await _preview(update.message, context, deck.name)
    return CardState.CONFIRMATION_PREVIEW


async def save_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    fields = context.user_data.get('cur_card')
    deck_id = context.user_data.get('cur_deck_id')

    if not fields or not deck_id:
        await safe_edit_text(
            query,
            "\u26a0\ufe0f Session expired \u2014 please start over.",
            reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton('Menu', callback_data='main_menu')]])
        )
        return ConversationHandler.END

    app = get_app(context)
    try:
        card = db.create_card(app.db_path, deck_id, fields)
    except ValidationError as e:
        await safe_edit_text(query, f"\u26a0\ufe0f {html.escape(str(e))}\n\nSend the word again:")
        return CardState.AWAITING_CONTENT
    except NotFound:
        _clear_add_state(context)
        await safe_edit_text(query, "\u26a0\ufe0f That deck no longer exists.")
        return ConversationHandler.END

    await safe_edit_text(
        query,
        f"\u2705 Saved\n\n{card_details(card)}\n\n<i>Send another word, or finish below.</i>",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\u2714\ufe0f Done', callback_data=f'card_done_{deck_id}')]
        ]),
    )
    context.user_data.pop('cur_card', None)
    return CardState.AWAITING_CONTENT


async def edit_pending(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """'Edit' on the preview: send the word again."""
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, f"\u270f\ufe0f Send the corrected word\n\n{FORMAT_HINT}")
    return CardState.AWAITING_CONTENT


async def finish_adding(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    deck_id = context.user_data.get('cur_deck_id') or query.data.split('_')[2]
    _clear_add_state(context)
    await show_deck_detail(query, context, deck_id)
    return ConversationHandler.END


# ── Card info / delete ────────────────────────────────────────

async def card_info(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    card_id = query.data.split('_')[2]  # card_info_<id>
    app = get_app(context)

    try:
        card = db.get_card(app.db_path, card_id)
    except NotFound:
        await safe_edit_text(query, "Card not found.", reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('My Decks', callback_data='my_decks')]
        ]))
        return

    srs = card.srs
    if card.is_new:
        schedule = "<i>New \u2014 not studied yet</i>"
    else:
        due = srs.due.strftime('%Y-%m-%d %H:%M UTC')
        schedule = (
            f"<i>Next review {due} \u00b7 every {format_interval(srs.interval_days)} \u00b7 "
            f"ease {srs.ease:.2f} \u00b7 {srs.reps} in a row \u00b7 {srs.lapses} lapses</i>"
        )

    await safe_edit_text(
        query,
        f"{card_details(card)}\n\n{schedule}",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('\u270f\ufe0f Edit', callback_data=f'card_edit_{card.id}'),
                InlineKeyboardButton('\U0001f5d1\ufe0f Delete', callback_data=f'card_delete_{card.id}'),
                InlineKeyboardButton('\U0001f50a Speak', callback_data=f'speak_{card.id}'),
            ],
            [InlineKeyboardButton('\u2190 Back', callback_data=f'deck_open_{card.deck_id}')],
        ]),
    )


async def card_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    card_id = query.data.split('_')[2]  # card_delete_<id>
    app = get_app(context)

    try:
        card = db.get_card(app.db_path, card_id)
    except NotFound:
        await safe_edit_text(query, "Card not found.")
        return

    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete this word?\n\n{card_details(card)}",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('Yes, delete', callback_data=f'card_delete_yes_{card.id}'),
            InlineKeyboardButton('Cancel', callback_data=f'card_info_{card.id}'),
        ]]),
    )


async def card_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    card_id = query.data.split('_')[3]  # card_delete_yes_<id>
    app = get_app(context)

    deck_id = context.user_data.get('manage_deck_id')
    try:
        deck_id = db.get_card(app.db_path, card_id).deck_id
    except NotFound:
        pass

    # already gone is fine: deleting is idempotent
    db.delete_card(app.db_path, card_id)

    if deck_id:
        page = context.user_data.get('manage_deck_page', 0)
        await show_deck_detail(query, context, deck_id, page)
    else:
        await safe_edit_text(query, "\U0001f5d1\ufe0f Card deleted.", reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('My Decks', callback_data='my_decks')]
        ]))


# ── Edit card ─────────────────────────────────────────────────

async def start_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    card_id = query.data.split('_')[2]  # card_edit_<id>
    app = get_app(context)

    try:
        card = db.get_card(app.db_path, card_id)
    except NotFound:
        await safe_edit_text(query, "Card not found.")
        return ConversationHandler.END

    context.user_data['editing_card_id'] = card_id
    current = ' | '.join(card.text_fields().values()).rstrip(' |')
    await safe_edit_text(
        query,
        f"\u270f\ufe0f Send the new version of this word\n\n"
        f"<b>Current:</b>\n<code>{html.escape(current)}</code>\n\n{FORMAT_HINT}",
    )
    return CardState.EDIT_CARD_CONTENT


async def receive_edit_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    fields = parse_card_text(update.message.text)
    error = _validate_fields(fields)
    if error:
        await safe_send_text(update.message, error)
        return CardState.EDIT_CARD_CONTENT

    context.user_data['cur_card'] = fields
    await safe_send_text(
        update.message,
        f"<b>\U0001f4cb Preview</b>\n\n{card_details(fields)}",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('\u2705 Save', callback_data='save_edit'),
            InlineKeyboardButton('\u2716 Cancel', callback_data='cancel_edit'),
        ]]),
    )
    return CardState.EDIT_CARD_PREVIEW


async def save_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    card_id = context.user_data.get('editing_card_id')
    fields = context.user_data.get('cur_card')
    app = get_app(context)

    try:
        card = db.update_card(app.db_path, card_id, fields or {})
    except ValidationError as e:
        await safe_edit_text(query, f"\u26a0\ufe0f {html.escape(str(e))}\n\nSend the word again:")
        return CardState.EDIT_CARD_CONTENT
    except NotFound:
        _clear_add_state(context)
        await safe_edit_text(query, "\u26a0\ufe0f That card no longer exists.")
        return ConversationHandler.END

    _clear_add_state(context)
    await safe_edit_text(
        query,
        f"\u2714\ufe0f Updated\n\n{card_details(card)}",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\U0001f4da Back to deck', callback_data=f'deck_open_{card.deck_id}')]
        ]),
    )
    return ConversationHandler.END


async def cancel_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    card_id = context.user_data.get('editing_card_id')
    _clear_add_state(context)
    await safe_edit_text(query, "Edit cancelled.", reply_markup=InlineKeyboardMarkup([
        [InlineKeyboardButton('\u2190 Back', callback_data=f'card_info_{card_id}')]
    ]))
    return ConversationHandler.END


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _clear_add_state(context)

    text, markup = build_main_menu(get_app(context))

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END


# ── ConversationHandlers ──────────────────────────────────────

add_card_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(add_card_entry, pattern=rf'^card_add_{ID_PATTERN}$')],
    per_message=False,
    states={
        CardState.AWAITING_CONTENT: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, get_content),
            CallbackQueryHandler(finish_adding, pattern=rf'^card_done_{ID_PATTERN}$'),
        ],
        CardState.CONFIRMATION_PREVIEW: [
            CallbackQueryHandler(save_card, pattern='^save_card$'),
            CallbackQueryHandler(edit_pending, pattern='^edit_card$'),
            CallbackQueryHandler(cancel, pattern='^cancel$'),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)

edit_card_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_edit_card, pattern=rf'^card_edit_{ID_PATTERN}$')],
    per_message=False,
    states={
        CardState.EDIT_CARD_CONTENT: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_edit_content),
        ],
        CardState.EDIT_CARD_PREVIEW: [
            CallbackQueryHandler(save_edit_card, pattern='^save_edit$'),
            CallbackQueryHandler(cancel_edit_card, pattern='^cancel_edit$'),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
