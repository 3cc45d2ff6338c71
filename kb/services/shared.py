"""
Shared helpers for kb services: upsert policy, storage error mapping, serializers.
"""

from __future__ import annotations

import random
import time
from functools import wraps
from typing import Callable, Iterable

from sqlalchemy.exc import DatabaseError, IntegrityError, OperationalError

import kb.config as config
from kb.errors import ConflictRetryable, StorageUnavailable
from kb.models import Entry, Tag
from kb.records import EntryRecord, TagRecord
from kb.validators import (
    validate_required_text as _validate_required_text,
    validate_identifier as _validate_identifier,
    validate_non_negative as _validate_non_negative,
    clamp_limit as _clamp_limit,
    validate_confidence as _validate_confidence,
    validate_vector as _validate_vector,
)

logger = config.logger

# =============================================================================
# Upsert policy
# =============================================================================

def dialect_insert(db):
    """Return the dialect-specific insert() supporting ON CONFLICT clauses."""
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise StorageUnavailable(f"unsupported database dialect: {dialect}")
    return insert


def _is_lock_error(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "database is locked" in message or "deadlock detected" in message


def _sleep_backoff(attempt: int) -> None:
    base = config.UPSERT_RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1))
    jitter = random.uniform(0, config.UPSERT_RETRY_BACKOFF_SECONDS)
    time.sleep(base + jitter)


def _guarded(fn: Callable, retry: bool) -> Callable:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        attempt = 0
        while True:
            try:
                return fn(*args, **kwargs)
            except (IntegrityError, OperationalError) as exc:
                transient = isinstance(exc, IntegrityError) or _is_lock_error(exc)
                if not transient:
                    logger.error("storage_error", extra={"operation": fn.__name__, "detail": str(exc)})
                    raise StorageUnavailable(f"{fn.__name__}: storage unavailable") from exc
                retries = config.UPSERT_RETRY_MAX if retry else 0
                if attempt >= retries:
                    logger.warning(
                        "write_conflict_exhausted",
                        extra={"operation": fn.__name__, "attempts": attempt + 1},
                    )
                    if isinstance(exc, IntegrityError):
                        raise ConflictRetryable(f"{fn.__name__}: conflicting concurrent write") from exc
                    raise StorageUnavailable(f"{fn.__name__}: database is busy") from exc
                attempt += 1
                logger.debug("write_conflict_retry", extra={"operation": fn.__name__, "attempt": attempt})
                _sleep_backoff(attempt)
            except DatabaseError as exc:
                logger.error("storage_error", extra={"operation": fn.__name__, "detail": str(exc)})
                raise StorageUnavailable(f"{fn.__name__}: storage unavailable") from exc
    return wrapper


def service_call(fn: Callable) -> Callable:
    """Map storage-layer failures to kb error kinds."""
    return _guarded(fn, retry=False)


def upsert_call(fn: Callable) -> Callable:
    """Like service_call, retrying uniqueness races a bounded number of times.

    The wrapped function must be safe to re-run from the start: it opens
    its own session and re-reads whatever it checked before writing.
    """
    return _guarded(fn, retry=True)


# =============================================================================
# Query helpers
# =============================================================================

LIKE_ESCAPE = "\\"


def escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


# =============================================================================
# Serializers
# =============================================================================

def tag_record(tag: Tag) -> TagRecord:
    return TagRecord(
        id=tag.id,
        name=tag.name,
        parent_id=tag.parent_id,
        created_at=tag.created_at,
    )


def entry_record(entry: Entry, tags: Iterable[Tag] = ()) -> EntryRecord:
    return EntryRecord(
        id=entry.id,
        content=entry.content,
        created_at=entry.created_at,
        last_viewed_at=entry.last_viewed_at,
        tags=tuple(tag_record(tag) for tag in tags),
    )
