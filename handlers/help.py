from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from utils.telegram_helpers import safe_edit_text, safe_send_text


HELP_TEXT = (
    "<b>\u2753 How it works</b>\n\n"
    "1. Open a deck and add words:\n"
    "<code>the house | Haus | das | Häuser | Das Haus ist groß.</code>\n"
    "   (english | german | article | plural | example | notes)\n"
    "2. Hit Study, pick Flashcards or Gender quiz\n"
    "3. Rate each word: Again, Good or Easy\n\n"
    "Forgotten words come back in a few hours; the ones you know "
    "come back later and later \U0001f9e0\n\n"
    "<b>Commands</b>\n"
    "/study \u2014 start a session\n"
    "/decks \u2014 manage decks and cards\n"
    "/find <i>word</i> \u2014 search the open deck (or all decks)\n"
    "/export \u2014 a deck as CSV\n"
    "/backup \u2014 everything as JSON\n"
    "/settings \u2014 front side of flashcards\n"
    "/stop \u2014 end the current session\n\n"
    "Send a <code>.csv</code> file to import words "
    "(columns: deck, english, german, article, plural, example, notes)."
)

_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton("Menu", callback_data='main_menu')]
])


async def help_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, HELP_TEXT, reply_markup=_MARKUP)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(update.message, HELP_TEXT, reply_markup=_MARKUP)
