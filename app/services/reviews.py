"""Background review fetches for a single ASIN."""

from __future__ import annotations

import logging
import time

from app.api.models import JobListResponse, JobStatusResponse, ReviewsRequest
from app.config import Settings
from app.jobs.models import JobProgress, JobRecord
from app.listings.marketplaces import get_marketplace
from app.services.asin_lookup import INVALID_ASIN_MSG
from app.services.jobs import job_status_from_record, list_jobs, load_job, trigger_job_processing
from app.storage.factory import _get_jobs_repo
from app.utils.ids import generate_job_id, is_valid_asin, normalize_asin
from fastapi import BackgroundTasks, HTTPException, status

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


async def create_reviews_job(request: ReviewsRequest, settings: Settings, background_tasks: BackgroundTasks, *, user_id: str | None) -> JobStatusResponse:
  """Persist a pending reviews job and schedule the fetch."""
  asin = normalize_asin(request.asin)
  if not is_valid_asin(asin):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_ASIN_MSG)
  try:
    marketplace = get_marketplace(request.country)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

  timestamp = time.strftime(_DATE_FORMAT, time.gmtime())
  record = JobRecord(
    job_id=generate_job_id(),
    user_id=user_id,
    job_kind="reviews",
    request={
      "asin": asin,
      "marketplace": marketplace.code,
      "amazon_domain": marketplace.amazon_domain,
      "scraper_domain": marketplace.scraper_domain,
      "user_id": user_id,
      "max_reviews": request.max_reviews,
      "sort_by": request.sort_by,
    },
    status="pending",
    progress=JobProgress(step="queued", current=0, total=1, message="Waiting to start."),
    created_at=timestamp,
    updated_at=timestamp,
  )
  repo = _get_jobs_repo(settings)
  await repo.create_job(record)
  logger.info("Created reviews job %s asin=%s marketplace=%s max_reviews=%d", record.job_id, asin, marketplace.code, request.max_reviews)
  trigger_job_processing(background_tasks, record.job_id, settings)
  return job_status_from_record(record)


async def get_reviews_job(job_id: str, settings: Settings, *, user_id: str | None) -> JobStatusResponse:
  record = await load_job(_get_jobs_repo(settings), job_id, user_id=user_id, job_kind="reviews")
  return job_status_from_record(record)


async def list_reviews_jobs(settings: Settings, *, user_id: str | None) -> JobListResponse:
  return JobListResponse(data=await list_jobs(settings, user_id=user_id, job_kind="reviews"))
