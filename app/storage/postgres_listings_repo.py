"""Postgres-backed repository for listings and their sections."""

from __future__ import annotations

from dataclasses import asdict, replace
from datetime import UTC, datetime

from sqlalchemy import select

from app.core.database import require_session_factory
from app.listings.models import GenerationJob, KeywordCoverage, KeywordTarget, ProductDetails, Section, canonical_section_order
from app.schema.sql import Listing, ListingSection
from app.storage.listings_repo import ListingsRepository
from app.utils.ids import generate_record_id


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


_SECTION_ORDER = {section_type: index for index, section_type in enumerate(canonical_section_order())}


class PostgresListingsRepository(ListingsRepository):
  """Persist listings to Postgres."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_listing(self, job: GenerationJob) -> None:
    async with self._session_factory() as session:
      row = Listing(listing_id=job.listing_id, created_at=job.created_at)
      self._apply(row, job)
      session.add(row)
      await session.commit()

  async def get_listing(self, listing_id: str) -> GenerationJob | None:
    async with self._session_factory() as session:
      row = await session.get(Listing, listing_id)
      if row is None:
        return None
      return self._model_to_job(row)

  async def save_listing(self, job: GenerationJob) -> GenerationJob:
    async with self._session_factory() as session:
      row = await session.get(Listing, job.listing_id, with_for_update=True)
      if row is None:
        raise LookupError(f"Listing {job.listing_id} does not exist.")
      updated = replace(job, updated_at=_now_iso())
      self._apply(row, updated)
      await session.commit()
      await session.refresh(row)
      return self._model_to_job(row)

  async def list_listings(self, *, user_id: str | None, limit: int = 50) -> list[GenerationJob]:
    async with self._session_factory() as session:
      stmt = select(Listing).where(Listing.user_id == user_id).order_by(Listing.updated_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_job(row) for row in rows]

  @staticmethod
  def _apply(row: Listing, job: GenerationJob) -> None:
    """Copy listing fields onto the ORM row, syncing sections by type."""
    row.user_id = job.user_id
    row.phase = job.phase
    row.status = job.status
    row.marketplace = job.marketplace
    row.product_json = asdict(job.product)
    row.keywords_json = [asdict(keyword) for keyword in job.keywords]
    row.keyword_coverage_json = job.keyword_coverage.to_dict()
    row.backend_attributes_json = job.backend_attributes or None
    row.notes = job.notes
    row.model_used = job.model_used
    row.tokens_used = job.tokens_used
    row.generation_error = job.generation_error
    row.updated_at = job.updated_at

    existing = {section.section_type: section for section in (row.sections or [])}
    wanted = {section.section_type: section for section in job.sections}
    for section_type, stored in list(existing.items()):
      if section_type not in wanted:
        row.sections.remove(stored)
    for section_type, section in wanted.items():
      stored = existing.get(section_type)
      if stored is None:
        stored = ListingSection(section_id=section.section_id or generate_record_id(), section_type=section_type)
        row.sections.append(stored)
      stored.variations = list(section.variations)
      stored.selected_variation = section.selected_variation
      stored.final_text = section.final_text
      stored.is_approved = section.is_approved

  @staticmethod
  def _model_to_job(row: Listing) -> GenerationJob:
    product = dict(row.product_json or {})
    return GenerationJob(
      listing_id=row.listing_id,
      user_id=row.user_id,
      phase=row.phase,  # type: ignore[arg-type]
      product=ProductDetails(**product),
      marketplace=row.marketplace,
      keywords=[KeywordTarget(**keyword) for keyword in row.keywords_json or []],
      created_at=row.created_at,
      updated_at=row.updated_at,
      sections=[
        Section(section_type=section.section_type, variations=list(section.variations or []), selected_variation=section.selected_variation, final_text=section.final_text, is_approved=section.is_approved, section_id=section.section_id)
        for section in sorted(row.sections, key=lambda section: _SECTION_ORDER.get(section.section_type, len(_SECTION_ORDER)))
      ],
      keyword_coverage=KeywordCoverage.from_dict(row.keyword_coverage_json),
      status=row.status,  # type: ignore[arg-type]
      notes=row.notes,
      model_used=row.model_used,
      tokens_used=row.tokens_used,
      generation_error=row.generation_error,
      backend_attributes=dict(row.backend_attributes_json or {}),
    )
