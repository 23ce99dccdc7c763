import logging
import os
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dotenv import load_dotenv

from utils.models import utc_now

load_dotenv()

DEFAULT_DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'wortschatz.db')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass(frozen=True)
class Settings:
    token: str | None = None
    proxy_url: str | None = None
    db_path: str = DEFAULT_DB_PATH
    owner_id: int | None = None
    default_goal: int = 20
    min_goal: int = 5
    max_goal: int = 200
    tts_lang: str = 'de'
    tts_tld: str = 'de'
    log_level: str = 'INFO'

    def clamp_goal(self, goal: int) -> int:
        return max(self.min_goal, min(self.max_goal, goal))


def _int(env: Mapping[str, str], key: str, default: int | None) -> int | None:
    raw = (env.get(key) or '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer (got {raw!r})") from None


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment (.env already loaded)."""
    env = os.environ if env is None else env
    defaults = Settings()
    settings = Settings(
        token=env.get('TELEGRAM_BOT_TOKEN'),
        proxy_url=env.get('PROXY_URL') or None,
        db_path=env.get('DB_PATH') or defaults.db_path,
        owner_id=_int(env, 'OWNER_ID', None),
        default_goal=_int(env, 'DEFAULT_GOAL', defaults.default_goal),
        min_goal=_int(env, 'MIN_GOAL', defaults.min_goal),
        max_goal=_int(env, 'MAX_GOAL', defaults.max_goal),
        tts_lang=env.get('TTS_LANG') or defaults.tts_lang,
        tts_tld=env.get('TTS_TLD') or defaults.tts_tld,
        log_level=(env.get('LOG_LEVEL') or defaults.log_level).upper(),
    )
    if not 1 <= settings.min_goal <= settings.max_goal:
        raise ValueError(f"Need 1 <= MIN_GOAL <= MAX_GOAL (got {settings.min_goal}, {settings.max_goal})")
    return settings


@dataclass
class AppContext:
    """
    Everything the handlers share, built once in bot.py and kept in
    application.bot_data['app'].

    sessions maps a Telegram user id to that user's in-memory StudySession.
    """
    settings: Settings
    clock: Callable[[], datetime] = utc_now
    rng: random.Random = field(default_factory=random.Random)
    sessions: dict[int, Any] = field(default_factory=dict)

    @property
    def db_path(self) -> str:
        return self.settings.db_path


def setup_logging(level: str = 'INFO') -> None:
    logging.basicConfig(format=LOG_FORMAT, level=level)
    # httpx logs every getUpdates poll at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
