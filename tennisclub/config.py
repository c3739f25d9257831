from __future__ import annotations

from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv()

# Repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
# Default sqlite database location
DB_FILE = REPO_ROOT / "tennisclub.db"


class BaseConfig:
    """Base settings shared across environments."""

    DB_USER = os.getenv("DB_USER", "tennis_user")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_HOST = os.getenv("DB_HOST", "localhost")


class ProductionConfig(BaseConfig):
    DB_NAME = "tennisclub_prod"


class TrialConfig(BaseConfig):
    DB_NAME = "tennisclub_trial"


class DevelopmentConfig(BaseConfig):
    DB_NAME = "tennisclub_dev"


_CONFIGS = {
    "production": ProductionConfig,
    "trial": TrialConfig,
    "development": DevelopmentConfig,
}

# Current active configuration determined by the ``APP_ENV`` environment
# variable. Defaults to development.
APP_ENV = os.getenv("APP_ENV", "development")
ActiveConfig = _CONFIGS.get(APP_ENV, DevelopmentConfig)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_database_url() -> str:
    """Return the configured database connection string.

    ``DATABASE_URL`` wins when set. Production-like environments with a
    ``DB_PASSWORD`` build a PostgreSQL URL. An empty string means the
    sqlite file at ``DB_FILE``.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if APP_ENV != "development" and ActiveConfig.DB_PASSWORD:
        return (
            f"postgresql://{ActiveConfig.DB_USER}:{ActiveConfig.DB_PASSWORD}"
            f"@{ActiveConfig.DB_HOST}/{ActiveConfig.DB_NAME}"
        )
    return ""


def get_redis_url() -> str | None:
    """Return the Redis connection string if set."""
    return os.getenv("REDIS_URL")


def get_cache_ttl() -> int:
    """Return the cache TTL in seconds."""
    return int(os.getenv("CACHE_TTL", "300"))


def get_token_ttl_hours() -> int:
    """Return how long an access token stays valid."""
    return int(os.getenv("TOKEN_TTL_HOURS", "24"))


def get_leaderboard_ranking() -> str:
    """Return the default leaderboard ranking strategy name."""
    return os.getenv("LEADERBOARD_RANKING", "points")


def get_count_draws() -> bool:
    """Return whether drawn matches count toward matches played."""
    return _env_bool("COUNT_DRAWS", True)


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


__all__ = [
    "DB_FILE",
    "get_database_url",
    "get_redis_url",
    "get_cache_ttl",
    "get_token_ttl_hours",
    "get_leaderboard_ranking",
    "get_count_draws",
    "get_log_level",
]
