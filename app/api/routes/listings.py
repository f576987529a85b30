import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from app.api.deps import get_current_user_id
from app.api.models import ConfirmPhaseRequest, GeneratePhaseRequest, KeywordCoverageResponse, ListingListResponse, ListingPatchRequest, ListingResponse
from app.config import Settings, get_settings
from app.services import export as export_service
from app.services import listings as listing_service

router = APIRouter()
logger = logging.getLogger("app.api.routes.listings")


@router.post("/generate", response_model=ListingResponse)
async def generate_phase(  # noqa: B008
  request: GeneratePhaseRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> ListingResponse:
  """Generate the next phase; without listing_id a new listing is created from product."""
  return await listing_service.generate_phase(request, settings, user_id=user_id)


@router.get("", response_model=ListingListResponse)
async def list_listings(settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> ListingListResponse:  # noqa: B008
  return await listing_service.list_listings(settings, user_id=user_id)


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(listing_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> ListingResponse:  # noqa: B008
  return await listing_service.get_listing(listing_id, settings, user_id=user_id)


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(  # noqa: B008
  listing_id: str,
  patch: ListingPatchRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> ListingResponse:
  """Merge-patch status, notes and section edits; keyword coverage is recomputed."""
  return await listing_service.update_listing(listing_id, patch, settings, user_id=user_id)


@router.post("/{listing_id}/confirm", response_model=ListingResponse)
async def confirm_phase(  # noqa: B008
  listing_id: str,
  request: ConfirmPhaseRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> ListingResponse:
  """Confirm the current phase and advance to the next one."""
  return await listing_service.confirm_listing_phase(listing_id, request.final_texts, settings, user_id=user_id)


@router.post("/{listing_id}/reset", response_model=ListingResponse)
async def reset_listing(listing_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> ListingResponse:  # noqa: B008
  """Discard generated sections and return to pending."""
  return await listing_service.reset_listing(listing_id, settings, user_id=user_id)


@router.get("/{listing_id}/coverage", response_model=KeywordCoverageResponse)
async def get_keyword_coverage(listing_id: str, settings: Settings = Depends(get_settings), user_id: str = Depends(get_current_user_id)) -> KeywordCoverageResponse:  # noqa: B008
  return await listing_service.get_keyword_coverage(listing_id, settings, user_id=user_id)


@router.get("/{listing_id}/export", response_class=PlainTextResponse)
async def export_listing(  # noqa: B008
  listing_id: str,
  export_format: Literal["clipboard", "csv", "flat_file"] = Query(default="clipboard", alias="format"),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> PlainTextResponse:
  """Export the listing as clipboard text, section CSV or a Seller Central flat file."""
  filename, content = await export_service.export_listing(listing_id, export_format, settings, user_id=user_id)
  media_type = "text/plain" if export_format == "clipboard" else "text/csv"
  return PlainTextResponse(content, media_type=media_type, headers={"Content-Disposition": f'attachment; filename="{filename}"'})
