"""
Safe wrappers for Telegram API calls.

Every handler uses these instead of raw query.edit_message_text / bot.send_message.
If the API call fails, these recover gracefully instead of crashing the handler.

DISCIPLINE RULE: all callers must:
  - Pass parse_mode='HTML' (the default here)
  - Wrap every piece of user-supplied text in html.escape() before embedding it
    in a format string. User content = any card field, deck name, or
    anything else read from the DB.

Safe pattern:
    await safe_edit_text(query, f"Deck: <b>{html.escape(deck.name)}</b>")
"""

import io
import logging
from typing import Any

from telegram import CallbackQuery, InlineKeyboardMarkup, Message
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError
from telegram.ext import ContextTypes

from config import AppContext

logger = logging.getLogger(__name__)


def get_app(context: ContextTypes.DEFAULT_TYPE) -> AppContext:
    """The AppContext bot.py stored in bot_data."""
    return context.bot_data['app']


async def safe_edit_text(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str = 'HTML',
) -> bool:
    """Edit a callback query's message text. Falls back to reply on failure."""
    try:
        await query.edit_message_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except BadRequest as e:
        msg = str(e).lower()
        if "message is not modified" in msg:
            return True  # same content: harmless
        if "message to edit not found" in msg:
            return await _fallback_reply(query, text, reply_markup, parse_mode)
        logger.warning(f"safe_edit_text BadRequest: {e}")
        return await _fallback_reply(query, text, reply_markup, parse_mode)
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_edit_text network error: {e}")
        return False


async def safe_send_text(
    target: Message | tuple[int, Any],
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str = 'HTML',
) -> bool:
    """Send a text message. target can be Message or (chat_id, bot) tuple."""
    try:
        if hasattr(target, 'reply_text'):
            await target.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)  # type: ignore[union-attr]
        else:
            chat_id, bot = target
            await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except Forbidden:
        logger.warning("Bot was blocked by user")
        return False
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_text network error: {e}")
        return False
    except BadRequest as e:
        logger.warning(f"safe_send_text BadRequest: {e}")
        return False


async def safe_send_document(
    message: Message,
    content: str | bytes,
    filename: str,
    caption: str | None = None,
) -> bool:
    """Send text/bytes as a file attachment."""
    data = content.encode('utf-8') if isinstance(content, str) else content
    try:
        await message.reply_document(document=io.BytesIO(data), filename=filename, caption=caption)
        return True
    except Forbidden:
        logger.warning("Bot was blocked by user")
        return False
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_document network error: {e}")
        return False
    except BadRequest as e:
        logger.warning(f"safe_send_document BadRequest: {e}")
        return False


async def safe_send_audio(
    message: Message,
    audio: io.BytesIO,
    title: str,
) -> bool:
    """Send an MP3 as an audio message."""
    try:
        await message.reply_audio(audio=audio, title=title, filename=f"{title}.mp3")
        return True
    except Forbidden:
        logger.warning("Bot was blocked by user")
        return False
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_audio network error: {e}")
        return False
    except BadRequest as e:
        logger.warning(f"safe_send_audio BadRequest: {e}")
        return False


async def _fallback_reply(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None,
    parse_mode: str = 'HTML',
) -> bool:
    """When edit fails, try sending a new message instead."""
    try:
        await query.message.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except Exception as e:
        logger.warning(f"_fallback_reply also failed: {e}")
        return False
