"""
Relay configuration loaded from the environment (and a local .env file).

Every value has a default so the relay starts with nothing but OPENAI_API_KEY set.
Numeric bounds are validated here, once, at startup.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_HISTORY = 15
DEFAULT_MAX_TOKENS = 600
DEFAULT_CACHE_LIMIT = 100
DEFAULT_RATE_LIMIT = 60
DEFAULT_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_UPSTREAM_TIMEOUT = 30
DEFAULT_MAX_BODY_BYTES = 50 * 1024

# Fixed sampling parameters, not configurable per request
TEMPERATURE = 0.2
TOP_P = 1

RATE_LIMIT_WINDOW_SECONDS = 60


def _positive_int(name: str, default: int) -> int:
    """Read a positive integer env var, falling back to `default` when unset."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Resolved relay settings. Immutable once built."""

    port: int = DEFAULT_PORT
    openai_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_history: int = DEFAULT_MAX_HISTORY
    max_tokens: int = DEFAULT_MAX_TOKENS
    cache_limit: int = DEFAULT_CACHE_LIMIT
    rate_limit: int = DEFAULT_RATE_LIMIT
    openai_api_url: str = DEFAULT_OPENAI_API_URL
    upstream_timeout: int = DEFAULT_UPSTREAM_TIMEOUT
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES

    def __post_init__(self) -> None:
        for name in ("port", "max_history", "max_tokens", "cache_limit",
                     "rate_limit", "upstream_timeout", "max_body_bytes"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from os.environ after loading .env (existing env vars win)."""
        load_dotenv()
        settings = cls(
            port=_positive_int("PORT", DEFAULT_PORT),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            model=os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
            max_history=_positive_int("MAX_HISTORY", DEFAULT_MAX_HISTORY),
            max_tokens=_positive_int("MAX_TOKENS", DEFAULT_MAX_TOKENS),
            cache_limit=_positive_int("CACHE_LIMIT", DEFAULT_CACHE_LIMIT),
            rate_limit=_positive_int("RATE_LIMIT", DEFAULT_RATE_LIMIT),
            openai_api_url=os.getenv("OPENAI_API_URL") or DEFAULT_OPENAI_API_URL,
            upstream_timeout=_positive_int("UPSTREAM_TIMEOUT", DEFAULT_UPSTREAM_TIMEOUT),
            max_body_bytes=_positive_int("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
        )
        logger.info(
            f"Settings loaded | model={settings.model} | max_history={settings.max_history} "
            f"| max_tokens={settings.max_tokens} | cache_limit={settings.cache_limit} "
            f"| rate_limit={settings.rate_limit}/{RATE_LIMIT_WINDOW_SECONDS}s"
        )
        return settings
