"""Storage interface for background jobs."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import JobKind, JobProgress, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    expected_status: JobStatus | None = None,
    status: JobStatus | None = None,
    progress: JobProgress | None = None,
    request: dict | None = None,
    result_json: dict | None = None,
    error_message: str | None = None,
    logs: list[str] | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> JobRecord | None:
    """
    Merge the provided fields into a job; None leaves a field unchanged.

    With expected_status the write only happens while the job is still in that
    status; otherwise nothing changes and None is returned.
    """

  async def list_jobs(self, *, user_id: str | None, job_kind: JobKind, limit: int = 50) -> list[JobRecord]:
    """List a user's jobs of one kind, newest first."""

  async def delete_job(self, job_id: str) -> bool:
    """Delete a job, returning False when it did not exist."""
