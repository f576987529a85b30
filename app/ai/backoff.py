"""Retry logic with specific backoff strategy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Delays in seconds between attempts; one final attempt follows the last delay.
RETRY_DELAYS_SECONDS: tuple[float, ...] = (5, 20, 50)

_RETRYABLE_MARKERS = ("429", "Too Many Requests", "Resource Exhausted", "RESOURCE_EXHAUSTED", "Quota Exceeded", "rate_limit", "overloaded")


def is_retryable_error(exc: BaseException) -> bool:
  """Return True for rate-limit, quota and overload errors."""
  error_msg = str(exc)
  if getattr(exc, "status_code", None) in {429, 529}:
    return True
  return any(marker in error_msg for marker in _RETRYABLE_MARKERS)


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
  """
  Execute a coroutine function with retries for 429/quota/overload errors.

  Delays: 5s, 20s, 50s. Other errors propagate immediately.
  """
  for attempt, delay in enumerate(RETRY_DELAYS_SECONDS):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      if not is_retryable_error(e):
        raise
      logger.warning("Retry attempt %s/%s needed. Error: %s. Retrying in %ss...", attempt + 1, len(RETRY_DELAYS_SECONDS), e, delay)
      await asyncio.sleep(delay)

  # Final attempt
  return await func(*args, **kwargs)
