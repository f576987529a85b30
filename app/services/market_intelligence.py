"""Market-intelligence runs: create, collect, select and analyze."""

from __future__ import annotations

import logging
import time

from app.api.models import DeleteResponse, JobListResponse, JobStatusResponse, MarketIntelligenceRequest, MarketSelectionRequest
from app.config import Settings
from app.jobs.models import JobProgress, JobRecord, JobStatus
from app.listings.marketplaces import get_marketplace
from app.services.jobs import delete_job, job_status_from_record, list_jobs, load_job, trigger_job_processing
from app.storage.factory import _get_jobs_repo
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import generate_job_id, normalize_asin
from fastapi import BackgroundTasks, HTTPException, status

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_COMPETITORS = 10
MIN_COMPETITORS = 5
MAX_COMPETITORS = 20


def clamp_competitors(value: int | None) -> int:
  """Clamp the requested competitor count to 5..20; missing or zero means 10."""
  return min(max(value or DEFAULT_COMPETITORS, MIN_COMPETITORS), MAX_COMPETITORS)


def _wrong_status(action: str, current: str, expected: str) -> HTTPException:
  return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'Cannot {action}: status is "{current}", expected "{expected}"')


async def _transition(repo: JobsRepository, job_id: str, *, action: str, expected: JobStatus, **fields) -> JobRecord:
  """Write the new status only if the job is still in `expected`; a concurrent caller that lost gets a 400."""
  updated = await repo.update_job(job_id, expected_status=expected, **fields)
  if updated is not None:
    return updated
  current = await repo.get_job(job_id)
  if current is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
  raise _wrong_status(action, current.status, expected)


async def create_market_job(request: MarketIntelligenceRequest, settings: Settings, *, user_id: str | None) -> JobStatusResponse:
  """Persist a pending run; collection starts with a separate call."""
  try:
    marketplace = get_marketplace(request.country)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

  timestamp = time.strftime(_DATE_FORMAT, time.gmtime())
  record = JobRecord(
    job_id=generate_job_id(),
    user_id=user_id,
    job_kind="market_intelligence",
    request={
      "keywords": request.keywords,
      "marketplace": marketplace.code,
      "amazon_domain": marketplace.amazon_domain,
      "scraper_domain": marketplace.scraper_domain,
      "user_id": user_id,
      "max_competitors": clamp_competitors(request.max_competitors),
      "reviews_per_product": request.reviews_per_product,
      "max_reviews": request.reviews_per_product,
      "sort_by": "recent",
      "selected_asins": [],
    },
    status="pending",
    created_at=timestamp,
    updated_at=timestamp,
  )
  await _get_jobs_repo(settings).create_job(record)
  logger.info("Created market job %s keywords=%s marketplace=%s", record.job_id, request.keywords, marketplace.code)
  return job_status_from_record(record)


async def start_collection(job_id: str, settings: Settings, background_tasks: BackgroundTasks, *, user_id: str | None) -> JobStatusResponse:
  """Move a pending run to collecting and schedule keyword search and product lookups."""
  repo = _get_jobs_repo(settings)
  record = await load_job(repo, job_id, user_id=user_id, job_kind="market_intelligence")
  if record.status != "pending":
    raise _wrong_status("collect", record.status, "pending")

  keywords = record.request.get("keywords") or []
  updated = await _transition(repo, job_id, action="collect", expected="pending", status="collecting", progress=JobProgress(step="keyword_search", current=0, total=len(keywords), message="Starting keyword searches..."))
  trigger_job_processing(background_tasks, job_id, settings)
  return job_status_from_record(updated)


async def select_products(job_id: str, selection: MarketSelectionRequest, settings: Settings, background_tasks: BackgroundTasks, *, user_id: str | None) -> JobStatusResponse:
  """Record the products to analyze and start the analysis."""
  repo = _get_jobs_repo(settings)
  record = await load_job(repo, job_id, user_id=user_id, job_kind="market_intelligence")
  if record.status != "awaiting_selection":
    raise _wrong_status("select", record.status, "awaiting_selection")

  selected = list(dict.fromkeys(normalize_asin(asin) for asin in selection.selected_asins if asin.strip()))
  collected = set((record.result_json or {}).get("top_asins") or [])
  unknown = [asin for asin in selected if asin not in collected]
  if not selected or unknown:
    detail = f"Not among the collected products: {', '.join(unknown)}" if unknown else "selected_asins must be a non-empty array"
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

  message = "Products confirmed. Starting analysis..."
  updated = await _transition(
    repo,
    job_id,
    action="select",
    expected="awaiting_selection",
    status="analyzing",
    request={**record.request, "selected_asins": selected},
    progress=JobProgress(step="review_fetch", current=0, total=len(selected), message=message),
  )
  logger.info("Market job %s analyzing %d selected products", job_id, len(selected))
  trigger_job_processing(background_tasks, job_id, settings)
  return job_status_from_record(updated)


async def get_market_job(job_id: str, settings: Settings, *, user_id: str | None) -> JobStatusResponse:
  record = await load_job(_get_jobs_repo(settings), job_id, user_id=user_id, job_kind="market_intelligence")
  return job_status_from_record(record)


async def list_market_jobs(settings: Settings, *, user_id: str | None) -> JobListResponse:
  return JobListResponse(data=await list_jobs(settings, user_id=user_id, job_kind="market_intelligence"))


async def delete_market_job(job_id: str, settings: Settings, *, user_id: str | None) -> DeleteResponse:
  return DeleteResponse(deleted=await delete_job(job_id, settings, user_id=user_id, job_kind="market_intelligence"))
