"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "relay.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly assistant answering customers over a chat app. "
    "Keep replies short and conversational. To send an item from the media "
    "library, put [MEDIA: <number>] on its own line, optionally followed by "
    "one line of caption. Never invent links."
)
DEFAULT_APOLOGY_TEXT = (
    "Sorry, I ran into a temporary technical problem. Please try again in a moment."
)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _load_system_prompt() -> str:
    path = os.getenv("SYSTEM_PROMPT_PATH")
    if path:
        return Path(path).read_text(encoding="utf-8")
    return os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)


@dataclass
class Settings:
    """Runtime settings for the relay."""

    # Storage
    store_backend: str = "sqlite"  # "sqlite", "redis" or "memory"
    database_url: str | None = None
    redis_url: str = "redis://localhost:6379/0"
    max_history_messages: int = 30
    conversation_ttl_days: int = 7
    profile_ttl_days: int = 365

    # Batching
    debounce_seconds: float = 8.0
    sliding_debounce: bool = False
    inbound_dedup_ttl_seconds: float = 60.0

    # Completion
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1024
    completion_timeout: float = 60.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    apology_text: str = DEFAULT_APOLOGY_TEXT

    # Transport
    transport_base_url: str = "https://www.wasenderapi.com/api"
    transport_api_key: str | None = None
    transport_timeout: float = 30.0
    pacing_min_seconds: float = 1.5
    pacing_max_seconds: float = 3.0
    media_gap_seconds: float = 0.5
    rate_limit_retries: int = 3
    rate_limit_backoff_seconds: float = 5.0

    # Media catalog
    catalog_url: str | None = None
    catalog_ttl_seconds: float = 300.0
    catalog_timeout: float = 10.0

    # Summaries
    summary_webhook_url: str | None = None
    summary_delay_minutes: float = 30.0
    summary_min_messages: int = 4

    @property
    def conversation_ttl_seconds(self) -> int:
        return self.conversation_ttl_days * 24 * 60 * 60

    @property
    def profile_ttl_seconds(self) -> int:
        return self.profile_ttl_days * 24 * 60 * 60

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "sqlite").lower(),
            database_url=os.getenv("DATABASE_URL"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            max_history_messages=int(os.getenv("MAX_HISTORY_MESSAGES", "30")),
            conversation_ttl_days=int(os.getenv("CONVERSATION_TTL_DAYS", "7")),
            profile_ttl_days=int(os.getenv("PROFILE_TTL_DAYS", "365")),
            debounce_seconds=float(os.getenv("DEBOUNCE_SECONDS", "8")),
            sliding_debounce=_env_bool("SLIDING_DEBOUNCE", False),
            inbound_dedup_ttl_seconds=float(
                os.getenv("INBOUND_DEDUP_TTL_SECONDS", "60")
            ),
            anthropic_model=os.getenv(
                "ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022"
            ),
            max_tokens=int(os.getenv("MAX_TOKENS", "1024")),
            completion_timeout=float(os.getenv("COMPLETION_TIMEOUT", "60")),
            system_prompt=_load_system_prompt(),
            apology_text=os.getenv("APOLOGY_TEXT", DEFAULT_APOLOGY_TEXT),
            transport_base_url=os.getenv(
                "TRANSPORT_BASE_URL", "https://www.wasenderapi.com/api"
            ),
            transport_api_key=os.getenv("TRANSPORT_API_KEY"),
            transport_timeout=float(os.getenv("TRANSPORT_TIMEOUT", "30")),
            pacing_min_seconds=float(os.getenv("PACING_MIN_SECONDS", "1.5")),
            pacing_max_seconds=float(os.getenv("PACING_MAX_SECONDS", "3.0")),
            media_gap_seconds=float(os.getenv("MEDIA_GAP_SECONDS", "0.5")),
            rate_limit_retries=int(os.getenv("RATE_LIMIT_RETRIES", "3")),
            rate_limit_backoff_seconds=float(
                os.getenv("RATE_LIMIT_BACKOFF_SECONDS", "5")
            ),
            catalog_url=os.getenv("CATALOG_URL"),
            catalog_ttl_seconds=float(os.getenv("CATALOG_TTL_SECONDS", "300")),
            catalog_timeout=float(os.getenv("CATALOG_TIMEOUT", "10")),
            summary_webhook_url=os.getenv("SUMMARY_WEBHOOK_URL"),
            summary_delay_minutes=float(os.getenv("SUMMARY_DELAY_MINUTES", "30")),
            summary_min_messages=int(os.getenv("SUMMARY_MIN_MESSAGES", "4")),
        )
