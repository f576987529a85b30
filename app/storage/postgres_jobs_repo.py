"""Postgres-backed repository for background jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import delete, select

from app.core.database import require_session_factory
from app.jobs.models import JobKind, JobProgress, JobRecord, JobStatus
from app.schema.sql import BackgroundJob
from app.storage.jobs_repo import JobsRepository


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresJobsRepository(JobsRepository):
  """Persist background jobs to Postgres."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        BackgroundJob(
          job_id=record.job_id,
          user_id=record.user_id,
          job_kind=record.job_kind,
          request_json=record.request,
          status=record.status,
          progress_json=record.progress.to_dict() if record.progress else None,
          result_json=record.result_json,
          error_message=record.error_message,
          logs_json=list(record.logs),
          created_at=record.created_at,
          updated_at=record.updated_at,
          completed_at=record.completed_at,
        )
      )
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(BackgroundJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

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
    async with self._session_factory() as session:
      row = await session.get(BackgroundJob, job_id, with_for_update=True)
      if row is None:
        return None
      # Compare-and-set under the row lock.
      if expected_status is not None and row.status != expected_status:
        return None
      if status is not None:
        row.status = status
      if progress is not None:
        row.progress_json = progress.to_dict()
      if request is not None:
        row.request_json = request
      if result_json is not None:
        row.result_json = result_json
      if error_message is not None:
        row.error_message = error_message
      if logs is not None:
        row.logs_json = list(logs)
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = updated_at or _now_iso()
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def list_jobs(self, *, user_id: str | None, job_kind: JobKind, limit: int = 50) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(BackgroundJob).where(BackgroundJob.job_kind == job_kind, BackgroundJob.user_id == user_id).order_by(BackgroundJob.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def delete_job(self, job_id: str) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(delete(BackgroundJob).where(BackgroundJob.job_id == job_id))
      await session.commit()
      return bool(result.rowcount)

  @staticmethod
  def _model_to_record(row: BackgroundJob) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      user_id=row.user_id,
      job_kind=row.job_kind,  # type: ignore[arg-type]
      request=dict(row.request_json or {}),
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress=JobProgress.from_dict(row.progress_json),
      result_json=row.result_json,
      error_message=row.error_message,
      completed_at=row.completed_at,
      logs=list(row.logs_json or []),
    )
