import logging

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user_id
from app.api.models import AsinLookupRequest, BatchLookupResponse, SavedLookupListResponse
from app.config import Settings, get_settings
from app.services import asin_lookup as lookup_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.asin_lookup")


@router.post("", response_model=BatchLookupResponse)
async def lookup_asins(  # noqa: B008
  request: AsinLookupRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> BatchLookupResponse:
  """Look up product details for up to ten ASINs; failures are reported per ASIN."""
  return await lookup_service.lookup_asins(request.asins, request.country, settings, user_id=user_id)


@router.get("", response_model=SavedLookupListResponse)
async def list_saved_lookups(  # noqa: B008
  search: str | None = Query(default=None, max_length=200),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> SavedLookupListResponse:
  """List saved lookups, optionally filtered by ASIN, title or brand."""
  return await lookup_service.list_saved_lookups(settings, user_id=user_id, search=search)
