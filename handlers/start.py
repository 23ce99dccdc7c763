import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ApplicationHandlerStop, ContextTypes, ConversationHandler

import database.database as db
from config import AppContext
from utils.telegram_helpers import get_app, safe_edit_text, safe_send_text
from utils.utils import plural

logger = logging.getLogger(__name__)


def build_main_menu(app: AppContext) -> tuple[str, InlineKeyboardMarkup]:
    """
    Returns (message_text, markup) for the main menu.
    Text includes a one-line summary of the collection.
    """
    stats = db.get_deck_stats(app.db_path, now=app.clock())
    total = sum(s['card_count'] for s in stats)
    due = sum(s['due_count'] for s in stats)

    if total == 0:
        text = "\U0001f1e9\U0001f1ea <b>Wortschatz</b>\n\n<i>No cards yet \u2014 add your first one!</i>"
    elif due == 0:
        text = f"\u2705 <b>All caught up!</b>\n\n<i>{plural(total, 'card')} in {plural(len(stats), 'deck')}</i>"
    else:
        text = f"\U0001f9e0 <b>{plural(due, 'card')} to review</b>\n\n<i>{total} cards total</i>"

    study_label = f'\U0001f9e0 Study \u00b7 {due} due' if due > 0 else '\U0001f9e0 Study'
    markup = InlineKeyboardMarkup([
        [
            InlineKeyboardButton(study_label, callback_data='study'),
            InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks'),
        ],
        [
            InlineKeyboardButton('\u2699\ufe0f Settings', callback_data='settings'),
            InlineKeyboardButton('\u2753 How it works', callback_data='help'),
        ],
    ])

    return text, markup


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info("Started /start")

    app = get_app(context)
    db.seed_starter_deck(app.db_path)

    name = update.effective_user.first_name or ''
    _, markup = build_main_menu(app)
    await safe_send_text(
        update.message,
        f"Hallo {html.escape(name)} \U0001f44b\n\n"
        "I help you learn German words with spaced repetition. "
        "Add words to a deck, study a few every day, "
        "and I'll bring each one back right before you'd forget it.",
        reply_markup=markup,
    )


async def main_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Callback handler for the 'Menu' button (outside conversation)."""
    query = update.callback_query
    await query.answer()

    text, markup = build_main_menu(get_app(context))
    await safe_edit_text(query, text, reply_markup=markup)


async def menu_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    text, markup = build_main_menu(get_app(context))
    await safe_send_text(update.message, text, reply_markup=markup)


async def force_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """ConversationHandler fallback: abort current flow and show main menu."""
    context.user_data.clear()
    await menu_command(update, context)
    return ConversationHandler.END


async def owner_guard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Runs before every other handler; drops updates from anyone but the owner."""
    owner_id = get_app(context).settings.owner_id
    if owner_id is None:
        return

    user = update.effective_user
    if user is None or user.id != owner_id:
        logger.warning(f"Ignoring update from non-owner {user.id if user else None}")
        raise ApplicationHandlerStop
