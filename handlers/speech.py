import logging

from gtts.tts import gTTSError
from telegram import Update
from telegram.ext import ContextTypes

import database.database as db
from database.errors import NotFound
from utils.speech import speech_text, synthesize
from utils.telegram_helpers import get_app, safe_send_audio

logger = logging.getLogger(__name__)


async def speak(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send the pronunciation of a card (article + German word)."""
    query = update.callback_query
    card_id = query.data.split('_')[1]  # speak_<id>
    app = get_app(context)

    try:
        card = db.get_card(app.db_path, card_id)
    except NotFound:
        await query.answer("Card not found.")
        return

    text = speech_text(card)
    try:
        audio = await synthesize(text, lang=app.settings.tts_lang, tld=app.settings.tts_tld)
    except gTTSError as e:
        logger.warning(f"TTS failed for card {card_id}: {e}")
        await query.answer("Speech is unavailable right now.")
        return

    await query.answer()
    await safe_send_audio(query.message, audio, title=text)
