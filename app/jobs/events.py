"""In-process change notifications for background job records."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from functools import lru_cache

from app.jobs.models import JobRecord


class JobEventHub:
  """
  Wakes status readers when a job record changes.

  Only writers in this process publish here, so a reader on another replica
  falls back to its own timeout and re-reads the record.
  """

  def __init__(self) -> None:
    self._waiters: dict[str, set[asyncio.Event]] = defaultdict(set)

  def publish(self, record: JobRecord) -> None:
    # Wake readers; they re-load the record from the repository.
    for event in self._waiters.pop(record.job_id, set()):
      event.set()

  async def wait_for_change(self, job_id: str, timeout_seconds: float) -> bool:
    """Block until the job is published again; False on timeout."""
    event = asyncio.Event()
    self._waiters[job_id].add(event)
    try:
      async with asyncio.timeout(timeout_seconds):
        await event.wait()
      return True
    except TimeoutError:
      return False
    finally:
      waiters = self._waiters.get(job_id)
      if waiters is not None:
        waiters.discard(event)
        if not waiters:
          self._waiters.pop(job_id, None)

  def waiter_count(self, job_id: str) -> int:
    return len(self._waiters.get(job_id, ()))

  @property
  def watched_jobs(self) -> int:
    return len(self._waiters)


@lru_cache(maxsize=1)
def get_event_hub() -> JobEventHub:
  return JobEventHub()
