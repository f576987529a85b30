"""Phased listing generation, edits and keyword coverage."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace

from app.ai.errors import GenerationTimeoutError
from app.ai.providers import get_model_for_settings
from app.api.models import (
  GeneratePhaseRequest,
  KeywordCoverageResponse,
  ListingListResponse,
  ListingPatchRequest,
  ListingResponse,
  ListingSummaryResponse,
  ProductInput,
  SectionResponse,
)
from app.config import Settings
from app.core.errors import ProviderError
from app.listings.coverage import compute_keyword_coverage
from app.listings.marketplaces import Marketplace, get_marketplace
from app.listings.models import GenerationJob, KeywordTarget, Phase, ProductDetails, is_section_type, section_label
from app.listings.phases import PhaseTransitionError, PhaseValidationError, apply_generated_phase, complete_listing, confirm_phase, ensure_can_generate, next_phase, record_generation_error, reset_job
from app.listings.writer import ListingWriter
from app.storage.factory import _get_listings_repo
from app.storage.listings_repo import ListingsRepository
from app.utils.ids import generate_listing_id
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

_LISTING_NOT_FOUND_MSG = "Listing not found."
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Listings with a generation call in flight in this process.
_IN_FLIGHT: set[str] = set()


def _get_listing_writer(settings: Settings) -> ListingWriter:
  return ListingWriter(get_model_for_settings(settings), timeout_seconds=settings.ai_timeout_seconds)


def _marketplace_for(job: GenerationJob) -> Marketplace:
  return get_marketplace(job.marketplace)


def _bad_request(exc: Exception) -> HTTPException:
  return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@asynccontextmanager
async def _generation_slot(listing_id: str) -> AsyncIterator[None]:
  """Hold the listing for one generation; a concurrent request gets 409."""
  if listing_id in _IN_FLIGHT:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A generation is already running for this listing. Wait for it to finish.")
  _IN_FLIGHT.add(listing_id)
  try:
    yield
  finally:
    _IN_FLIGHT.discard(listing_id)


def listing_response(job: GenerationJob) -> ListingResponse:
  """Convert a listing into its API payload."""
  marketplace = _marketplace_for(job)
  coverage = job.keyword_coverage.to_dict()
  return ListingResponse(
    listing_id=job.listing_id,
    phase=job.phase,
    status=job.status,
    marketplace=job.marketplace,
    product={
      "product_name": job.product.product_name,
      "brand": job.product.brand,
      "asin": job.product.asin,
      "category": job.product.category,
      "attributes": dict(job.product.attributes),
      "keywords": [{"keyword": kw.keyword, "relevance": kw.relevance, "search_volume": kw.search_volume} for kw in job.keywords],
    },
    sections=[
      SectionResponse(
        section_type=section.section_type,
        label=section_label(section.section_type),
        variations=list(section.variations),
        selected_variation=section.selected_variation,
        final_text=section.final_text,
        is_approved=section.is_approved,
        char_limit=marketplace.char_limits.for_section(section.section_type),
      )
      for section in job.sections
    ],
    keyword_coverage=KeywordCoverageResponse.model_validate(coverage),
    model_used=job.model_used,
    tokens_used=job.tokens_used,
    generation_error=job.generation_error,
    notes=job.notes,
    backend_attributes=job.backend_attributes,
    created_at=job.created_at,
    updated_at=job.updated_at,
  )


def _new_job(product: ProductInput, user_id: str | None) -> GenerationJob:
  try:
    marketplace = get_marketplace(product.marketplace)
  except ValueError as exc:
    raise _bad_request(exc) from exc
  now = time.strftime(_DATE_FORMAT, time.gmtime())
  return GenerationJob(
    listing_id=generate_listing_id(),
    user_id=user_id,
    phase="pending",
    product=ProductDetails(
      product_name=product.product_name.strip(),
      brand=product.brand.strip(),
      asin=product.asin,
      category=product.category,
      attributes=dict(product.attributes),
      review_insights=product.review_insights,
      qna_insights=product.qna_insights,
    ),
    marketplace=marketplace.code,
    keywords=[KeywordTarget(keyword=kw.keyword.strip(), relevance=kw.relevance, search_volume=kw.search_volume) for kw in product.keywords],
    created_at=now,
    updated_at=now,
  )


async def _load(repo: ListingsRepository, listing_id: str, user_id: str | None) -> GenerationJob:
  job = await repo.get_listing(listing_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_LISTING_NOT_FOUND_MSG)
  if user_id and job.user_id and job.user_id != user_id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")
  return job


def _recompute_coverage(job: GenerationJob) -> GenerationJob:
  return replace(job, keyword_coverage=compute_keyword_coverage(job.keywords, job.confirmed_texts(), job.drafted_texts()))


async def _generate_next(job: GenerationJob, phase: Phase, confirmed: dict[str, str] | None, repo: ListingsRepository, settings: Settings) -> GenerationJob:
  """
  Confirm the current phase, persist it, then generate the requested phase.

  Guards run before anything is written. A provider failure stores the error on
  the listing, keeps its phase and sections, and surfaces as 502 (504 on timeout).
  """
  marketplace = _marketplace_for(job)
  bullet_count = marketplace.char_limits.bullet_count
  try:
    ensure_can_generate(job, phase)
    confirmed_job = confirm_phase(job, confirmed, bullet_count=bullet_count)
  except (PhaseValidationError, PhaseTransitionError) as exc:
    raise _bad_request(exc) from exc

  confirmed_job = await repo.save_listing(_recompute_coverage(confirmed_job))

  try:
    writer = _get_listing_writer(settings)
    draft = await writer.generate_phase(confirmed_job, phase, marketplace)
  except GenerationTimeoutError as exc:
    logger.warning("Generation timed out listing_id=%s phase=%s", job.listing_id, phase)
    await repo.save_listing(record_generation_error(confirmed_job, str(exc)))
    raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc), headers={"X-Listing-Id": job.listing_id}) from exc
  except ProviderError as exc:
    logger.warning("Generation failed listing_id=%s phase=%s provider=%s error=%s", job.listing_id, phase, exc.provider, exc)
    await repo.save_listing(record_generation_error(confirmed_job, str(exc)))
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc), headers={"X-Listing-Id": job.listing_id}) from exc

  drafted = {section.section_type: list(section.variations) for section in draft.sections}
  coverage = compute_keyword_coverage(confirmed_job.keywords, confirmed_job.confirmed_texts(), drafted)
  advanced = apply_generated_phase(confirmed_job, phase, draft.sections, coverage=coverage, model_used=draft.model_used, tokens_used=draft.tokens_used)
  if draft.backend_attributes:
    advanced = replace(advanced, backend_attributes=draft.backend_attributes)
  saved = await repo.save_listing(advanced)
  logger.info("Generated phase=%s listing_id=%s tokens=%d coverage=%d", phase, saved.listing_id, draft.tokens_used, coverage.coverage_score)
  return saved


async def generate_phase(request: GeneratePhaseRequest, settings: Settings, *, user_id: str | None) -> ListingResponse:
  """Start a listing with its title phase, or generate the next phase of an existing one."""
  repo = _get_listings_repo(settings)
  if request.listing_id is None:
    if request.product is None:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="product is required to start a new listing.")
    if request.phase != "title":
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A new listing starts with the title phase.")
    job = _new_job(request.product, user_id)
    await repo.create_listing(job)
    logger.info("Created listing listing_id=%s marketplace=%s keywords=%d", job.listing_id, job.marketplace, len(job.keywords))
  else:
    job = await _load(repo, request.listing_id, user_id)

  async with _generation_slot(job.listing_id):
    saved = await _generate_next(job, request.phase, request.confirmed, repo, settings)
  return listing_response(saved)


async def confirm_listing_phase(listing_id: str, final_texts: dict[str, str], settings: Settings, *, user_id: str | None) -> ListingResponse:
  """Confirm the current phase and advance: generate the next phase, or complete after backend."""
  repo = _get_listings_repo(settings)
  job = await _load(repo, listing_id, user_id)

  async with _generation_slot(job.listing_id):
    if job.phase == "backend":
      marketplace = _marketplace_for(job)
      try:
        completed = complete_listing(confirm_phase(job, final_texts, bullet_count=marketplace.char_limits.bullet_count))
      except (PhaseValidationError, PhaseTransitionError) as exc:
        raise _bad_request(exc) from exc
      saved = await repo.save_listing(_recompute_coverage(completed))
      logger.info("Completed listing listing_id=%s", listing_id)
      return listing_response(saved)

    try:
      following = next_phase(job.phase)
    except PhaseTransitionError as exc:
      raise _bad_request(exc) from exc
    saved = await _generate_next(job, following, final_texts, repo, settings)
  return listing_response(saved)


async def reset_listing(listing_id: str, settings: Settings, *, user_id: str | None) -> ListingResponse:
  repo = _get_listings_repo(settings)
  job = await _load(repo, listing_id, user_id)
  async with _generation_slot(job.listing_id):
    saved = await repo.save_listing(reset_job(job))
  logger.info("Reset listing listing_id=%s", listing_id)
  return listing_response(saved)


def _apply_patch(job: GenerationJob, patch: ListingPatchRequest) -> GenerationJob:
  """Merge-patch a listing; only fields present in the request change."""
  updated = job
  if "status" in patch.model_fields_set and patch.status is not None:
    updated = replace(updated, status=patch.status)
  if "notes" in patch.model_fields_set:
    updated = replace(updated, notes=patch.notes)
  if not patch.sections:
    return updated

  sections = list(updated.sections)
  for section_type, section_patch in patch.sections.items():
    if not is_section_type(section_type):
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown section type '{section_type}'.")
    index = next((i for i, section in enumerate(sections) if section.section_type == section_type), None)
    if index is None:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Section '{section_type}' has not been generated yet.")
    section = sections[index]
    if "selected_variation" in section_patch.model_fields_set and section_patch.selected_variation is not None:
      if section_patch.selected_variation >= len(section.variations):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Section '{section_type}' has {len(section.variations)} variations.")
      section = replace(section, selected_variation=section_patch.selected_variation)
    if "final_text" in section_patch.model_fields_set:
      final_text = section_patch.final_text.strip() if section_patch.final_text else None
      section = replace(section, final_text=final_text or None, is_approved=section.is_approved and bool(final_text))
    sections[index] = section
  return replace(updated, sections=sections)


async def update_listing(listing_id: str, patch: ListingPatchRequest, settings: Settings, *, user_id: str | None) -> ListingResponse:
  """Apply user edits and recompute keyword coverage."""
  repo = _get_listings_repo(settings)
  job = await _load(repo, listing_id, user_id)
  if listing_id in _IN_FLIGHT:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A generation is running for this listing. Try again when it finishes.")
  patched = _recompute_coverage(_apply_patch(job, patch))
  saved = await repo.save_listing(patched)
  return listing_response(saved)


async def get_listing(listing_id: str, settings: Settings, *, user_id: str | None) -> ListingResponse:
  repo = _get_listings_repo(settings)
  return listing_response(await _load(repo, listing_id, user_id))


async def load_listing(listing_id: str, settings: Settings, *, user_id: str | None) -> GenerationJob:
  """Fetch the domain listing for exports."""
  return await _load(_get_listings_repo(settings), listing_id, user_id)


async def get_keyword_coverage(listing_id: str, settings: Settings, *, user_id: str | None) -> KeywordCoverageResponse:
  repo = _get_listings_repo(settings)
  job = _recompute_coverage(await _load(repo, listing_id, user_id))
  return KeywordCoverageResponse.model_validate(job.keyword_coverage.to_dict())


async def list_listings(settings: Settings, *, user_id: str | None) -> ListingListResponse:
  repo = _get_listings_repo(settings)
  jobs = await repo.list_listings(user_id=user_id)
  return ListingListResponse(
    data=[
      ListingSummaryResponse(
        listing_id=job.listing_id,
        product_name=job.product.product_name,
        brand=job.product.brand,
        marketplace=job.marketplace,
        phase=job.phase,
        status=job.status,
        coverage_score=job.keyword_coverage.coverage_score,
        updated_at=job.updated_at,
      )
      for job in jobs
    ]
  )
