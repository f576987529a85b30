"""Fetch several external resources in one request and report per-item outcomes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from app.core.errors import ProviderError

MAX_BATCH_SIZE = 10

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BatchValidationError(ValueError):
  """Raised when a batch request is rejected before any provider call."""


@dataclass
class BatchItemResult(Generic[T]):
  """Outcome for one input key. Outcomes are final and independent of each other."""

  key: str
  success: bool
  data: T | None = None
  error: str | None = None
  saved_id: str | None = None


@dataclass
class BatchFetchSummary(Generic[T]):
  results: list[BatchItemResult[T]] = field(default_factory=list)

  @property
  def succeeded(self) -> int:
    return sum(1 for item in self.results if item.success)

  @property
  def failed(self) -> int:
    return sum(1 for item in self.results if not item.success)

  @property
  def message(self) -> str:
    return batch_message(self.succeeded, self.failed)


def batch_message(succeeded: int, failed: int) -> str:
  if failed:
    return f"Fetched {succeeded}, {failed} failed."
  return f"Fetched {succeeded}."


def validate_batch_keys(keys: Sequence[str], *, max_batch_size: int = MAX_BATCH_SIZE) -> None:
  if not keys:
    raise BatchValidationError("At least one item is required.")
  if len(keys) > max_batch_size:
    raise BatchValidationError(f"Maximum {max_batch_size} items per request.")


def _error_text(exc: Exception) -> str:
  if isinstance(exc, ProviderError):
    return str(exc) or f"{exc.provider} request failed"
  return str(exc) or type(exc).__name__


async def fetch_batch(
  keys: Sequence[str],
  fetch_one: Callable[[str], Awaitable[T]],
  *,
  persist: Callable[[str, T], Awaitable[str | None]] | None = None,
  validate_key: Callable[[str], str | None] | None = None,
  delay_seconds: float = 0.0,
  max_batch_size: int = MAX_BATCH_SIZE,
) -> BatchFetchSummary[T]:
  """
  Run fetch_one for every key, one at a time, and collect per-key outcomes.

  Results keep the input order. A key rejected by validate_key (which returns an
  error message or None) is reported as failed without calling the provider.
  Each success is persisted before the next key is fetched; a persistence failure
  is logged and leaves the item successful without a saved_id.
  """
  validate_batch_keys(keys, max_batch_size=max_batch_size)

  summary: BatchFetchSummary[T] = BatchFetchSummary()
  provider_calls = 0
  for key in keys:
    rejection = validate_key(key) if validate_key else None
    if rejection:
      summary.results.append(BatchItemResult(key=key, success=False, error=rejection))
      continue

    # Provider rate limits: pause between consecutive provider calls.
    if provider_calls and delay_seconds > 0:
      await asyncio.sleep(delay_seconds)
    provider_calls += 1

    try:
      data = await fetch_one(key)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Batch item failed key=%s error_type=%s error=%s", key, type(exc).__name__, exc)
      summary.results.append(BatchItemResult(key=key, success=False, error=_error_text(exc)))
      continue

    saved_id: str | None = None
    if persist is not None:
      try:
        saved_id = await persist(key, data)
      except Exception as exc:  # noqa: BLE001
        logger.error("Failed to persist batch item key=%s: %s", key, exc, exc_info=True)
    summary.results.append(BatchItemResult(key=key, success=True, data=data, saved_id=saved_id))

  logger.info("Batch finished: %s", summary.message)
  return summary


def summary_to_dict(summary: BatchFetchSummary[Any], *, key_name: str, serialize: Callable[[Any], Any]) -> dict[str, Any]:
  """Render a summary as the response payload; key_name labels each item's key (e.g. asin)."""
  results = []
  for item in summary.results:
    entry: dict[str, Any] = {key_name: item.key, "success": item.success}
    if item.success:
      entry["data"] = serialize(item.data)
      entry["saved_id"] = item.saved_id
    else:
      entry["error"] = item.error
    results.append(entry)
  return {"results": results, "succeeded": summary.succeeded, "failed": summary.failed, "message": summary.message}
