"""
Pronunciation audio for a card via Google Text-to-Speech (gTTS).

gTTS is blocking network I/O, so synthesize() runs it in a worker thread.
"""

import asyncio
import io
import logging

from gtts import gTTS

from utils.models import Card

logger = logging.getLogger(__name__)


def speech_text(card: Card) -> str:
    """What gets read out: the article and the German word, e.g. 'das Haus'."""
    return f"{card.article} {card.german}".strip()


def _synthesize_blocking(text: str, lang: str, tld: str) -> io.BytesIO:
    buf = io.BytesIO()
    gTTS(text=text, lang=lang, tld=tld).write_to_fp(buf)
    buf.seek(0)
    return buf


async def synthesize(text: str, lang: str = 'de', tld: str = 'de') -> io.BytesIO:
    """MP3 bytes for `text`."""
    logger.debug(f"Synthesizing {text!r} ({lang}/{tld})")
    return await asyncio.to_thread(_synthesize_blocking, text, lang, tld)
