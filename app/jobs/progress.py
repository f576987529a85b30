"""Job status and progress tracking for background workers."""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

from app.jobs.events import JobEventHub
from app.jobs.models import JobProgress, JobRecord, JobStatus, is_forward_transition
from app.storage.jobs_repo import JobsRepository
from app.utils.db_retry import execute_with_retry

MAX_TRACKED_LOGS = 100
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class JobStateError(RuntimeError):
  """Raised when a worker tries to move a job backwards or out of a terminal state."""


class JobMissingError(RuntimeError):
  """Raised when the job record disappeared while a worker was running (e.g. deleted)."""


def _now() -> str:
  return time.strftime(_DATE_FORMAT, time.gmtime())


class JobProgressTracker:
  """Single writer for one job's status, progress and logs."""

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, status: JobStatus, events: JobEventHub | None = None, initial_logs: Iterable[str] | None = None) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._status: JobStatus = status
    self._events = events
    self._logs: list[str] = list(initial_logs or [])[-MAX_TRACKED_LOGS:]

  @classmethod
  def for_record(cls, record: JobRecord, jobs_repo: JobsRepository, *, events: JobEventHub | None = None) -> JobProgressTracker:
    return cls(job_id=record.job_id, jobs_repo=jobs_repo, status=record.status, events=events, initial_logs=record.logs)

  @property
  def status(self) -> JobStatus:
    return self._status

  @property
  def logs(self) -> list[str]:
    """Return a copy of the tracked logs."""
    return list(self._logs)

  def add_logs(self, *messages: str) -> None:
    """Append log lines while preserving the rolling window."""
    self._logs.extend(messages)
    if len(self._logs) > MAX_TRACKED_LOGS:
      self._logs = self._logs[-MAX_TRACKED_LOGS:]

  async def _write(self, **fields: Any) -> JobRecord:
    async def _update() -> JobRecord | None:
      return await self._jobs_repo.update_job(self._job_id, logs=self._logs, updated_at=_now(), **fields)

    record = await execute_with_retry(operation_name=f"update_job:{self._job_id}", func=_update)
    if record is None:
      raise JobMissingError(f"Job {self._job_id} no longer exists.")
    if self._events is not None:
      self._events.publish(record)
    return record

  async def set_status(self, status: JobStatus, *, progress: JobProgress | None = None, message: str | None = None) -> JobRecord:
    """Move the job to a later status; moving backwards raises JobStateError."""
    if not is_forward_transition(self._status, status):
      raise JobStateError(f"Job {self._job_id} cannot move from {self._status} to {status}.")
    if message:
      self.add_logs(message)
    record = await self._write(status=status, progress=progress)
    self._status = status
    return record

  async def report(self, step: str, current: int, total: int, message: str = "") -> JobRecord:
    """Update progress without changing status."""
    if message:
      self.add_logs(message)
    return await self._write(progress=JobProgress(step=step, current=current, total=total, message=message))

  async def save_result(self, result_json: dict[str, Any], *, status: JobStatus | None = None, progress: JobProgress | None = None, message: str | None = None) -> JobRecord:
    """Store a result payload, optionally moving to a non-terminal status (e.g. awaiting_selection)."""
    if status is not None and not is_forward_transition(self._status, status):
      raise JobStateError(f"Job {self._job_id} cannot move from {self._status} to {status}.")
    if message:
      self.add_logs(message)
    record = await self._write(result_json=result_json, status=status, progress=progress)
    if status is not None:
      self._status = status
    return record

  async def complete(self, result_json: dict[str, Any], *, message: str = "Completed.", progress: JobProgress | None = None) -> JobRecord:
    if not is_forward_transition(self._status, "completed"):
      raise JobStateError(f"Job {self._job_id} cannot move from {self._status} to completed.")
    self.add_logs(message)
    record = await self._write(status="completed", result_json=result_json, completed_at=_now(), progress=progress or JobProgress(step="completed", message=message))
    self._status = "completed"
    return record

  async def fail(self, error_message: str) -> JobRecord:
    if not is_forward_transition(self._status, "failed"):
      raise JobStateError(f"Job {self._job_id} cannot move from {self._status} to failed.")
    self.add_logs(error_message)
    record = await self._write(status="failed", error_message=error_message, completed_at=_now())
    self._status = "failed"
    return record
