from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
from utils.constants import FRONT_SETTING, FRONT_SIDES, MENU_BUTTON
from utils.telegram_helpers import get_app, safe_edit_text, safe_send_text


def _settings_view(db_path: str) -> tuple[str, InlineKeyboardMarkup]:
    front = db.get_setting(db_path, FRONT_SETTING, 'english')
    text = (
        "<b>\u2699\ufe0f Settings</b>\n\n"
        f"Flashcard front side: <b>{front}</b>"
    )
    buttons = [
        [
            InlineKeyboardButton(
                f"\u2714\ufe0f {side.capitalize()}" if side == front else side.capitalize(),
                callback_data=f'set_front_{side}',
            )
            for side in FRONT_SIDES
        ],
        [MENU_BUTTON],
    ]
    return text, InlineKeyboardMarkup(buttons)


async def settings_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    text, markup = _settings_view(get_app(context).db_path)
    await safe_edit_text(query, text, reply_markup=markup)


async def settings_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    text, markup = _settings_view(get_app(context).db_path)
    await safe_send_text(update.message, text, reply_markup=markup)


async def set_front(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    side = query.data.split('_')[2]  # set_front_<side>
    db_path = get_app(context).db_path

    if side in FRONT_SIDES:
        db.set_setting(db_path, FRONT_SETTING, side)
    await query.answer(f"Front side: {side}")

    text, markup = _settings_view(db_path)
    await safe_edit_text(query, text, reply_markup=markup)
