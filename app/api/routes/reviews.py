import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import PlainTextResponse

from app.api.deps import get_current_user_id
from app.api.models import JobListResponse, JobStatusResponse, ReviewsRequest
from app.config import Settings, get_settings
from app.services import export as export_service
from app.services import reviews as reviews_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.reviews")


@router.post("", response_model=JobStatusResponse, status_code=202)
async def create_reviews_job(  # noqa: B008
  request: ReviewsRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobStatusResponse:
  """Start a background reviews fetch; poll the returned job for progress."""
  return await reviews_service.create_reviews_job(request, settings, background_tasks, user_id=user_id)


@router.get("", response_model=JobListResponse)
async def list_reviews_jobs(settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> JobListResponse:  # noqa: B008
  return await reviews_service.list_reviews_jobs(settings, user_id=user_id)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_reviews_job(job_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> JobStatusResponse:  # noqa: B008
  return await reviews_service.get_reviews_job(job_id, settings, user_id=user_id)


@router.get("/{job_id}/export", response_class=PlainTextResponse)
async def export_reviews(job_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> PlainTextResponse:  # noqa: B008
  """Download fetched reviews as CSV."""
  filename, content = await export_service.export_reviews(job_id, settings, user_id=user_id)
  return PlainTextResponse(content, media_type="text/csv", headers={"Content-Disposition": f'attachment; filename="{filename}"'})
