"""
Service configuration.

Everything is read from the environment once, at start-up, into a frozen
Settings value that the app factory hands to each component.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .lists import ListSet

logger = logging.getLogger(__name__)


def _parse_list(value: Optional[str]) -> List[str]:
    return [s.strip() for s in (value or "").split(",") if s.strip()]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    sensitivity: float = 0.5
    review_min_score: int = 50
    lists: ListSet = field(default_factory=ListSet)

    api_key: Optional[str] = None
    allow_origin: Optional[str] = None

    callback_url: Optional[str] = None
    callback_secret: Optional[str] = None
    async_delay_ms: int = 1500

    rate_limit_window_ms: int = 60_000
    rate_limit_max: int = 20
    result_ttl_seconds: float = 3600.0

    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    port: int = 3000

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_key or self.allow_origin)


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    lists = ListSet(
        trusted_ips=frozenset(_parse_list(os.getenv("TRUSTED_IPS"))),
        blocked_ips=frozenset(_parse_list(os.getenv("BLOCKED_IPS"))),
        trusted_email_hashes=frozenset(_parse_list(os.getenv("TRUSTED_EMAIL_HASHES"))),
        blocked_email_hashes=frozenset(_parse_list(os.getenv("BLOCKED_EMAIL_HASHES"))),
        trusted_user_ids=frozenset(_parse_list(os.getenv("TRUSTED_USER_IDS"))),
        blocked_user_ids=frozenset(_parse_list(os.getenv("BLOCKED_USER_IDS"))),
    )

    return Settings(
        sensitivity=_env_float("RISK_SENSITIVITY", 0.5),
        review_min_score=_env_int("REVIEW_MIN_SCORE", 50),
        lists=lists,
        api_key=os.getenv("API_KEY") or None,
        allow_origin=os.getenv("ALLOW_ORIGIN") or None,
        callback_url=os.getenv("CALLBACK_URL") or None,
        callback_secret=os.getenv("CALLBACK_SECRET") or None,
        async_delay_ms=max(0, _env_int("ASYNC_DELAY_MS", 1500)),
        rate_limit_window_ms=max(1000, _env_int("RATE_LIMIT_WINDOW_MS", 60_000)),
        rate_limit_max=max(1, _env_int("RATE_LIMIT_MAX", 20)),
        result_ttl_seconds=max(0.0, _env_float("RESULT_TTL_SECONDS", 3600.0)),
        cors_origins=_parse_list(os.getenv("CORS_ORIGIN", "http://localhost:5173")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=_env_int("PORT", 3000),
    )
