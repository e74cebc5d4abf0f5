"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    openai_api_key: str = ""
    serpapi_api_key: str = ""
    database_url: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-3.5-turbo"
    worker_port: int = 9000
    basic_search_proxy_url: str = ""
    place_delay_seconds: float = 2.0
    query_delay_seconds: float = 1.0
    page_token_delay_seconds: float = 2.0
    resolver_min_text_length: int = 50
    place_time_budget_seconds: Optional[float] = None
    deep_search: bool = False
    search_locale: str = "th"

    @property
    def premium_enabled(self) -> bool:
        return bool(self.serpapi_api_key)

    @property
    def resolver_enabled(self) -> bool:
        return bool(self.openai_api_key)


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    serpapi_api_key = os.getenv("SERPAPI_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    worker_port = int(os.getenv("WORKER_PORT", "9000"))
    budget_raw = os.getenv("PLACE_TIME_BUDGET_SECONDS", "").strip()
    place_time_budget = _get_float("PLACE_TIME_BUDGET_SECONDS", 0.0) if budget_raw else None

    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google Places requests will fail.")
    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; AI field resolution will be skipped.")
    if not serpapi_api_key:
        logger.warning("SERPAPI_API_KEY is not configured; contact search will use the basic fallback only.")
    if not database_url:
        logger.warning("DATABASE_URL is not set; leads will not be persisted.")

    return Settings(
        google_api_key=google_api_key,
        openai_api_key=openai_api_key,
        serpapi_api_key=serpapi_api_key,
        database_url=database_url,
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
        worker_port=worker_port,
        basic_search_proxy_url=os.getenv("BASIC_SEARCH_PROXY_URL", ""),
        place_delay_seconds=_get_float("PLACE_DELAY_SECONDS", 2.0),
        query_delay_seconds=_get_float("QUERY_DELAY_SECONDS", 1.0),
        page_token_delay_seconds=_get_float("PAGE_TOKEN_DELAY_SECONDS", 2.0),
        resolver_min_text_length=int(os.getenv("RESOLVER_MIN_TEXT_LENGTH", "50")),
        place_time_budget_seconds=place_time_budget,
        deep_search=_get_bool("DEEP_SEARCH"),
        search_locale=(os.getenv("SEARCH_LOCALE") or "th").strip().lower(),
    )
