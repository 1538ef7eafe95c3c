"""
Environment configuration for the guest gateway.

Values are read on every call (not cached at import) so operators can change
limits with a restart-free env reload and tests can monkeypatch them.
"""
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_UPSTREAM_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_DAILY_LIMIT = 15
DEFAULT_VELOCITY_LIMIT = 10
DEFAULT_VELOCITY_WINDOW_SECONDS = 60
DEFAULT_UPSTREAM_TIMEOUT_SECONDS = 30.0
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_database_url() -> Optional[str]:
    """DATABASE_URL with postgres:// normalized to postgresql:// for SQLAlchemy."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return None
    if url.startswith("postgres://"):
        url = "postgresql://" + url[10:]
    return url


def get_upstream_api_key() -> Optional[str]:
    key = os.getenv("GROQ_API_KEY", "").strip()
    return key or None


def get_upstream_url() -> str:
    return os.getenv("UPSTREAM_URL") or DEFAULT_UPSTREAM_URL


def get_daily_limit() -> int:
    """Daily limit for the guest role (DAILY_LIMIT, default 15)."""
    return _int_env("DAILY_LIMIT", DEFAULT_DAILY_LIMIT)


def get_velocity_limit() -> int:
    """Requests per velocity window for the guest role (VELOCITY_LIMIT, default 10)."""
    return _int_env("VELOCITY_LIMIT", DEFAULT_VELOCITY_LIMIT)


def get_velocity_window_seconds() -> int:
    return _int_env("VELOCITY_WINDOW_SECONDS", DEFAULT_VELOCITY_WINDOW_SECONDS)


def get_upstream_timeout() -> float:
    return _float_env("UPSTREAM_TIMEOUT_SECONDS", DEFAULT_UPSTREAM_TIMEOUT_SECONDS)


def get_store_timeout() -> float:
    return _float_env("STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS)


def run_migrations_on_startup() -> bool:
    return os.getenv("RUN_MIGRATIONS_ON_STARTUP", "true").strip().lower() in ("1", "true", "yes")
