import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from app.api.deps import get_current_user_id
from app.api.models import DeleteResponse, JobListResponse, JobStatusResponse, MarketIntelligenceRequest, MarketSelectionRequest
from app.config import Settings, get_settings
from app.services import market_intelligence as market_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.market_intelligence")


@router.post("", response_model=JobStatusResponse, status_code=201)
async def create_market_job(  # noqa: B008
  request: MarketIntelligenceRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobStatusResponse:
  """Create a pending market-intelligence run."""
  return await market_service.create_market_job(request, settings, user_id=user_id)


@router.get("", response_model=JobListResponse)
async def list_market_jobs(settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> JobListResponse:  # noqa: B008
  return await market_service.list_market_jobs(settings, user_id=user_id)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_market_job(job_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> JobStatusResponse:  # noqa: B008
  return await market_service.get_market_job(job_id, settings, user_id=user_id)


@router.post("/{job_id}/collect", response_model=JobStatusResponse, status_code=202)
async def start_collection(  # noqa: B008
  job_id: str,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobStatusResponse:
  """Search the keywords and look up competitor products in the background."""
  return await market_service.start_collection(job_id, settings, background_tasks, user_id=user_id)


@router.post("/{job_id}/select", response_model=JobStatusResponse, status_code=202)
async def select_products(  # noqa: B008
  job_id: str,
  selection: MarketSelectionRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> JobStatusResponse:
  """Choose the products to analyze and start the analysis."""
  return await market_service.select_products(job_id, selection, settings, background_tasks, user_id=user_id)


@router.delete("/{job_id}", response_model=DeleteResponse)
async def delete_market_job(job_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> DeleteResponse:  # noqa: B008
  return await market_service.delete_market_job(job_id, settings, user_id=user_id)
