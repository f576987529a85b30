"""Poll background job status until every tracked job reaches an end state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from app.jobs.models import JobRecord, is_terminal

# Statuses that end observation: terminal ones plus the point where a user must pick competitors.
OBSERVATION_END_STATUSES = frozenset({"completed", "failed", "awaiting_selection"})

NotificationKind = Literal["succeeded", "failed", "awaiting_selection"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobStatusSnapshot:
  job_id: str
  status: str
  error_message: str | None = None
  result: dict[str, Any] | None = None
  progress: dict[str, Any] | None = None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobStatusSnapshot:
    return cls(
      job_id=record.job_id,
      status=record.status,
      error_message=record.error_message,
      result=record.result_json,
      progress=record.progress.to_dict() if record.progress else None,
    )

  @classmethod
  def from_payload(cls, payload: dict[str, Any]) -> JobStatusSnapshot:
    return cls(
      job_id=str(payload["job_id"]),
      status=str(payload["status"]),
      error_message=payload.get("error_message"),
      result=payload.get("result"),
      progress=payload.get("progress"),
    )


@dataclass(frozen=True)
class JobNotification:
  job_id: str
  kind: NotificationKind
  snapshot: JobStatusSnapshot

  @property
  def message(self) -> str:
    if self.kind == "failed":
      return self.snapshot.error_message or "Job failed."
    if self.kind == "awaiting_selection":
      return "Collection finished; select competitors to analyze."
    return "Job completed."


ResumableJob = JobRecord | JobStatusSnapshot | Mapping[str, Any]
StatusSource = Callable[[str], Awaitable[JobStatusSnapshot]]
NotificationSink = Callable[[JobNotification], Awaitable[None]]


def _as_snapshot(job: ResumableJob) -> JobStatusSnapshot:
  if isinstance(job, JobStatusSnapshot):
    return job
  if isinstance(job, JobRecord):
    return JobStatusSnapshot.from_record(job)
  return JobStatusSnapshot.from_payload(dict(job))


def _notification_kind(status: str) -> NotificationKind:
  if status == "completed":
    return "succeeded"
  if status == "failed":
    return "failed"
  return "awaiting_selection"


@dataclass
class ProgressPoller:
  """
  Tracks job ids and re-fetches their status every interval.

  An id whose status ends observation is removed and produces exactly one
  notification. A fetch error leaves the id tracked for the next round. The
  poller itself has no timeout; run() returns when nothing is tracked or
  stop() is called, and a later run() picks up where it left off.
  """

  fetch_status: StatusSource
  notify: NotificationSink
  interval_seconds: float = 3.0
  _tracked: dict[str, None] = field(default_factory=dict, init=False)
  _notified: set[str] = field(default_factory=set, init=False)
  _stop_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)

  @property
  def tracked(self) -> list[str]:
    return list(self._tracked)

  def track(self, job_id: str) -> bool:
    """Start watching a job; already notified or tracked ids are ignored."""
    if job_id in self._notified or job_id in self._tracked:
      return False
    self._tracked[job_id] = None
    return True

  def resume(self, jobs: Iterable[ResumableJob]) -> list[str]:
    """
    Re-attach to jobs that are still running; nothing is re-submitted.

    Accepts server-side records, snapshots, or job payloads as listed by the API.
    """
    resumed = []
    for job in jobs:
      snapshot = _as_snapshot(job)
      if snapshot.status in OBSERVATION_END_STATUSES or is_terminal(snapshot.status):
        continue
      if self.track(snapshot.job_id):
        resumed.append(snapshot.job_id)
    if resumed:
      logger.info("Resumed polling for %d job(s): %s", len(resumed), ", ".join(resumed))
    return resumed

  def stop(self) -> None:
    self._stop_event.set()

  async def poll_once(self) -> list[JobNotification]:
    """Fetch every tracked id once and emit notifications for those that finished."""
    job_ids = list(self._tracked)
    if not job_ids:
      return []
    snapshots = await asyncio.gather(*(self.fetch_status(job_id) for job_id in job_ids), return_exceptions=True)

    notifications: list[JobNotification] = []
    for job_id, snapshot in zip(job_ids, snapshots, strict=True):
      if isinstance(snapshot, BaseException):
        if isinstance(snapshot, asyncio.CancelledError):
          raise snapshot
        logger.warning("Status fetch failed for job %s; will retry: %s", job_id, snapshot)
        continue
      if snapshot.status not in OBSERVATION_END_STATUSES:
        continue
      # Remove before notifying so a slow sink can never cause a second notification.
      self._tracked.pop(job_id, None)
      if job_id in self._notified:
        continue
      self._notified.add(job_id)
      notification = JobNotification(job_id=job_id, kind=_notification_kind(snapshot.status), snapshot=snapshot)
      notifications.append(notification)
      try:
        await self.notify(notification)
      except Exception as exc:  # noqa: BLE001
        logger.error("Notification handler failed for job %s: %s", job_id, exc, exc_info=True)
    return notifications

  async def run(self) -> None:
    # A previous stop() only ends the run it interrupted.
    self._stop_event.clear()
    while self._tracked and not self._stop_event.is_set():
      await self.poll_once()
      if not self._tracked:
        break
      try:
        async with asyncio.timeout(self.interval_seconds):
          await self._stop_event.wait()
      except TimeoutError:
        pass
