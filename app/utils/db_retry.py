"""Retry transient database failures for background job writes."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

T = TypeVar("T")
logger = logging.getLogger(__name__)

# SQLSTATE codes worth a second attempt: serialization failure and deadlock.
_RETRYABLE_SQLSTATES = {"40001": "serialization_conflict", "40P01": "deadlock"}
# SQLSTATE classes that never succeed on retry.
_PERMANENT_SQLSTATE_CLASSES = {"23": "integrity_error", "42": "schema_error", "28": "permission_error"}
_CONNECTIVITY_MARKERS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a database failure."""

  retryable: bool
  category: str
  sqlstate: str | None


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy exception."""
  # asyncpg exposes sqlstate, psycopg exposes pgcode.
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    for attribute in ("sqlstate", "pgcode"):
      value = getattr(exc.orig, attribute, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """Decide whether a database failure is transient."""
  sqlstate = _extract_sqlstate(exc)

  # Known transient SQLSTATEs first.
  if sqlstate in _RETRYABLE_SQLSTATES:
    return DBFailureClassification(retryable=True, category=_RETRYABLE_SQLSTATES[sqlstate], sqlstate=sqlstate)

  if sqlstate and sqlstate[:2] in _PERMANENT_SQLSTATE_CLASSES:
    return DBFailureClassification(retryable=False, category=_PERMANENT_SQLSTATE_CLASSES[sqlstate[:2]], sqlstate=sqlstate)

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, category="integrity_error", sqlstate=sqlstate)

  # Driver level failures are transient only when they look like connectivity loss.
  if isinstance(exc, OperationalError | ConnectionError):
    error_msg = str(exc).lower()
    if isinstance(exc, ConnectionError) or any(marker in error_msg for marker in _CONNECTIVITY_MARKERS):
      return DBFailureClassification(retryable=True, category="connectivity_error", sqlstate=sqlstate)
    return DBFailureClassification(retryable=False, category="operational_error_unknown", sqlstate=sqlstate)

  return DBFailureClassification(retryable=False, category=f"unknown_error:{type(exc).__name__}", sqlstate=sqlstate)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 3, initial_backoff_ms: int = 100, max_backoff_ms: int = 2000) -> T:
  """
  Run an idempotent database operation, retrying transient failures.

  Non-retryable errors are raised on the first attempt; retryable ones are raised
  once max_attempts is exhausted.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      return await func()
    except Exception as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "DB operation failed: operation=%s attempt=%d/%d category=%s sqlstate=%s retryable=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
      )
      if not classification.retryable or attempt >= max_attempts:
        raise

      # Exponential backoff with jitter, capped at max_backoff_ms.
      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      backoff_ms += random.uniform(-backoff_ms * 0.25, backoff_ms * 0.25)
      await asyncio.sleep(backoff_ms / 1000.0)
