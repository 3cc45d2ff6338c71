"""
Shared configuration for the kb core.
"""

from __future__ import annotations

import logging
import os

KB_LOG_LEVEL = os.environ.get("KB_LOG_LEVEL", "INFO").strip().upper()

logging.basicConfig(level=getattr(logging, KB_LOG_LEVEL, logging.INFO))
logger = logging.getLogger("kb")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def default_sqlite_path() -> str:
    return os.path.join(os.path.expanduser("~"), ".kb", "kb.db")


# Database settings
DB_BACKEND = os.environ.get("KB_DB_BACKEND", "sqlite").strip().lower()
SQLITE_PATH = os.environ.get("KB_SQLITE_PATH", default_sqlite_path())
DATABASE_URL = os.environ.get("DATABASE_URL")
SQLITE_BUSY_TIMEOUT_SECONDS = _get_float("KB_SQLITE_BUSY_TIMEOUT_SECONDS", 30.0)

# Database initialization controls
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Request/input limits
DEFAULT_LIST_LIMIT = _get_int("KB_DEFAULT_LIST_LIMIT", 20)
MAX_RESULT_LIMIT = _get_int("KB_MAX_RESULT_LIMIT", 100)
MAX_CONTENT_LENGTH = _get_int("KB_MAX_CONTENT_LENGTH", 1_000_000)
MAX_QUERY_LENGTH = _get_int("KB_MAX_QUERY_LENGTH", 4000)
MAX_TAG_NAME_LENGTH = _get_int("KB_MAX_TAG_NAME_LENGTH", 100)
PREFIX_LOOKUP_WINDOW = _get_int("KB_PREFIX_LOOKUP_WINDOW", 100)
SIMILAR_LIMIT = _get_int("KB_SIMILAR_LIMIT", 5)
SIMILARITY_SCAN_BATCH = _get_int("KB_SIMILARITY_SCAN_BATCH", 500)

# Upsert retry policy
UPSERT_RETRY_MAX = _get_int("KB_UPSERT_RETRY_MAX", 3)
UPSERT_RETRY_BACKOFF_SECONDS = _get_float("KB_UPSERT_RETRY_BACKOFF_SECONDS", 0.05)

# Classifier (Anthropic Messages API)
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY")
ANTHROPIC_API_URL = os.environ.get("ANTHROPIC_API_URL", "https://api.anthropic.com/v1/messages")
ANTHROPIC_VERSION = "2023-06-01"
CLASSIFIER_MODEL = os.environ.get("CLASSIFIER_MODEL", "claude-sonnet-4-20250514")
CLASSIFIER_MAX_TOKENS = _get_int("CLASSIFIER_MAX_TOKENS", 1024)
CLASSIFIER_TIMEOUT_SECONDS = _get_float("CLASSIFIER_TIMEOUT_SECONDS", 30.0)

# Embedder (Voyage AI embeddings API)
VOYAGE_API_KEY = os.environ.get("VOYAGE_API_KEY")
VOYAGE_API_URL = os.environ.get("VOYAGE_API_URL", "https://api.voyageai.com/v1/embeddings")
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "voyage-3-lite")
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
EMBEDDING_BACKFILL_BATCH_LIMIT = _get_int("EMBEDDING_BACKFILL_BATCH_LIMIT", 50)

# Provider retry/backoff
PROVIDER_RETRY_MAX = _get_int("PROVIDER_RETRY_MAX", 2)
PROVIDER_RETRY_BACKOFF_SECONDS = _get_float("PROVIDER_RETRY_BACKOFF_SECONDS", 0.5)
PROVIDER_RETRY_JITTER_SECONDS = _get_float("PROVIDER_RETRY_JITTER_SECONDS", 0.25)
PROVIDER_FAILURE_THRESHOLD = _get_int("PROVIDER_FAILURE_THRESHOLD", 5)
PROVIDER_COOLDOWN_SECONDS = _get_int("PROVIDER_COOLDOWN_SECONDS", 60)

# URL fetcher
FETCH_TIMEOUT_SECONDS = _get_float("FETCH_TIMEOUT_SECONDS", 30.0)
FETCH_MAX_BYTES = _get_int("FETCH_MAX_BYTES", 5 * 1024 * 1024)
FETCH_MAX_TEXT_CHARS = _get_int("FETCH_MAX_TEXT_CHARS", 10 * 1024)
FETCH_USER_AGENT = "kb/1.0 (knowledge-base)"

# HTTP API
CORS_ALLOWED_ORIGINS = os.environ.get("CORS_ALLOWED_ORIGINS", "*")


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("KB_DB_BACKEND must be 'postgres' or 'sqlite'")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("KB_SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = sqlite_url(SQLITE_PATH)
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when KB_DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when KB_DB_BACKEND=postgres")

    if DEFAULT_LIST_LIMIT <= 0 or DEFAULT_LIST_LIMIT > MAX_RESULT_LIMIT:
        errors.append("KB_DEFAULT_LIST_LIMIT must be between 1 and KB_MAX_RESULT_LIMIT")
    if UPSERT_RETRY_MAX < 0:
        errors.append("KB_UPSERT_RETRY_MAX must be >= 0")

    if not ANTHROPIC_API_KEY:
        logger.info("ANTHROPIC_API_KEY not set; classification will be skipped")
    if not VOYAGE_API_KEY:
        logger.info("VOYAGE_API_KEY not set; embeddings will be skipped")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))


def sqlite_url(path: str) -> str:
    return f"sqlite:///{os.path.expanduser(path)}"
