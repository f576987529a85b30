import logging

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user_id
from app.api.models import JobStatusResponse
from app.config import Settings, get_settings
from app.services import jobs as job_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  wait_seconds: float = Query(default=0.0, ge=0.0, le=job_service.MAX_WAIT_SECONDS),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobStatusResponse:
  """Fetch a background job; wait_seconds holds the request until the job changes."""
  return await job_service.get_job_status(job_id, settings, user_id=user_id, wait_seconds=wait_seconds)
