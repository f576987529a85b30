import logging

from app.api.models import JobProgressResponse, JobStatusResponse
from app.config import Settings
from app.jobs.events import get_event_hub
from app.jobs.models import JobKind, JobRecord, is_terminal
from app.storage.factory import _get_jobs_repo, _get_lookups_repo
from app.storage.jobs_repo import JobsRepository
from fastapi import BackgroundTasks, HTTPException, status

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."
MAX_WAIT_SECONDS = 30.0


def job_status_from_record(record: JobRecord) -> JobStatusResponse:
  """Convert a persisted job record into an API response payload."""
  progress = JobProgressResponse(**record.progress.to_dict()) if record.progress else None
  return JobStatusResponse(
    job_id=record.job_id,
    job_kind=record.job_kind,
    status=record.status,
    progress=progress,
    request=record.request,
    result=record.result_json,
    error_message=record.error_message,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
  )


async def load_job(repo: JobsRepository, job_id: str, *, user_id: str | None, job_kind: JobKind | None = None) -> JobRecord:
  """Fetch a job the user owns, optionally of one kind; 404 otherwise."""
  record = await repo.get_job(job_id)
  if record is None or (job_kind is not None and record.job_kind != job_kind):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)

  if user_id and record.user_id and record.user_id != user_id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")
  return record


async def get_job_status(job_id: str, settings: Settings, *, user_id: str | None, wait_seconds: float = 0.0) -> JobStatusResponse:
  """
  Fetch a job's status; with wait_seconds, hold the request until the job changes.

  Jobs that already reached a terminal status return immediately.
  """
  repo = _get_jobs_repo(settings)
  record = await load_job(repo, job_id, user_id=user_id)
  if wait_seconds <= 0 or is_terminal(record.status):
    return job_status_from_record(record)

  changed = await get_event_hub().wait_for_change(job_id, min(wait_seconds, MAX_WAIT_SECONDS))
  if changed:
    refreshed = await repo.get_job(job_id)
    if refreshed is None:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
    record = refreshed
  return job_status_from_record(record)


async def list_jobs(settings: Settings, *, user_id: str | None, job_kind: JobKind) -> list[JobStatusResponse]:
  repo = _get_jobs_repo(settings)
  records = await repo.list_jobs(user_id=user_id, job_kind=job_kind)
  return [job_status_from_record(record) for record in records]


async def delete_job(job_id: str, settings: Settings, *, user_id: str | None, job_kind: JobKind) -> bool:
  repo = _get_jobs_repo(settings)
  await load_job(repo, job_id, user_id=user_id, job_kind=job_kind)
  return await repo.delete_job(job_id)


async def process_job_sync(job_id: str, settings: Settings) -> JobRecord | None:
  """Run a job immediately in the current task."""
  repo = _get_jobs_repo(settings)
  try:
    from app.jobs.worker import JobProcessor

    record = await repo.get_job(job_id)

    if record is None:
      logger.warning("Job %s disappeared before processing started.", job_id)
      return None

    processor = JobProcessor(jobs_repo=repo, lookups_repo=_get_lookups_repo(settings), settings=settings, events=get_event_hub())
    return await processor.process_job(record)
  except Exception as exc:  # noqa: BLE001
    logger.error("Job processing failed for job %s: %s", job_id, exc, exc_info=True)
    try:
      await repo.update_job(job_id, status="failed", error_message=f"System error during job processing: {exc}")
    except Exception as update_exc:  # noqa: BLE001
      logger.error("Failed to update job status after processing error: %s", update_exc)
    return None


def trigger_job_processing(background_tasks: BackgroundTasks, job_id: str, settings: Settings) -> None:
  """Schedule the job to run after the response is sent."""

  if not settings.jobs_auto_process:
    logger.info("Automatic processing disabled; job %s left for a worker.", job_id)
    return

  background_tasks.add_task(process_job_sync, job_id, settings)
