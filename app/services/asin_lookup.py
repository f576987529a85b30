"""Batch ASIN lookups through Oxylabs with per-item outcomes."""

from __future__ import annotations

import logging

from app.api.models import BatchLookupResponse, SavedLookupListResponse, SavedLookupResponse
from app.config import Settings
from app.listings.marketplaces import get_marketplace
from app.scraping.models import ProductDetails
from app.scraping.oxylabs import OxylabsClient
from app.services.batch import BatchValidationError, fetch_batch, summary_to_dict
from app.storage.factory import _get_lookups_repo
from app.storage.lookups_repo import AsinLookupRecord
from app.utils.ids import is_valid_asin, normalize_asin
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

INVALID_ASIN_MSG = "Invalid ASIN format (must be 10 alphanumeric characters)"


def _get_oxylabs_client(settings: Settings) -> OxylabsClient:
  return OxylabsClient(settings.oxylabs_username, settings.oxylabs_password, timeout_seconds=settings.scrape_timeout_seconds)


def _asin_rejection(asin: str) -> str | None:
  return None if is_valid_asin(asin) else INVALID_ASIN_MSG


async def lookup_asins(asins: list[str], country: str, settings: Settings, *, user_id: str | None) -> BatchLookupResponse:
  """Look up each ASIN in order; failures are reported per item and never fail the request."""
  try:
    marketplace = get_marketplace(country)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

  client = _get_oxylabs_client(settings)
  repo = _get_lookups_repo(settings)
  keys = [normalize_asin(asin) for asin in asins]

  async def _fetch(asin: str) -> ProductDetails:
    return await client.lookup_asin(asin, domain=marketplace.scraper_domain)

  async def _persist(asin: str, product: ProductDetails) -> str | None:
    record = AsinLookupRecord(
      asin=asin,
      marketplace=marketplace.code,
      user_id=user_id,
      title=product.title,
      brand=product.brand,
      price=product.price,
      rating=product.rating,
      reviews_count=product.reviews_count,
      raw_data=product.model_dump(mode="json"),
    )
    return await repo.upsert_lookup(record)

  try:
    summary = await fetch_batch(keys, _fetch, persist=_persist, validate_key=_asin_rejection, delay_seconds=settings.scrape_delay_seconds)
  except BatchValidationError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

  logger.info("ASIN lookup user=%s marketplace=%s %s", user_id, marketplace.code, summary.message)
  payload = summary_to_dict(summary, key_name="asin", serialize=lambda product: product.model_dump(mode="json"))
  return BatchLookupResponse.model_validate(payload)


async def list_saved_lookups(settings: Settings, *, user_id: str | None, search: str | None = None) -> SavedLookupListResponse:
  repo = _get_lookups_repo(settings)
  records = await repo.list_lookups(user_id=user_id, search=search.strip() if search else None)
  return SavedLookupListResponse(
    data=[
      SavedLookupResponse(
        lookup_id=record.lookup_id,
        asin=record.asin,
        marketplace=record.marketplace,
        title=record.title,
        brand=record.brand,
        price=record.price,
        rating=record.rating,
        reviews_count=record.reviews_count,
        updated_at=record.updated_at,
      )
      for record in records
    ]
  )
