"""Postgres-backed repository for ASIN lookups."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert

from app.core.database import require_session_factory
from app.schema.sql import AsinLookup
from app.storage.lookups_repo import AsinLookupRecord, AsinLookupsRepository
from app.utils.ids import generate_record_id


class PostgresAsinLookupsRepository(AsinLookupsRepository):
  """Persist ASIN lookups to Postgres, one row per (asin, marketplace)."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def upsert_lookup(self, record: AsinLookupRecord) -> str:
    values = {
      "lookup_id": record.lookup_id or generate_record_id(),
      "asin": record.asin,
      "marketplace": record.marketplace,
      "user_id": record.user_id,
      "title": record.title,
      "brand": record.brand,
      "price": record.price,
      "rating": record.rating,
      "reviews_count": record.reviews_count,
      "raw_json": record.raw_data,
    }
    stmt = insert(AsinLookup).values(**values)
    refreshed = {key: stmt.excluded[key] for key in ("user_id", "title", "brand", "price", "rating", "reviews_count", "raw_json")}
    stmt = stmt.on_conflict_do_update(index_elements=["asin", "marketplace"], set_={**refreshed, "updated_at": func.now()}).returning(AsinLookup.lookup_id)
    async with self._session_factory() as session:
      lookup_id = (await session.execute(stmt)).scalar_one()
      await session.commit()
      return lookup_id

  async def get_recent(self, asin: str, marketplace: str, *, max_age_hours: int) -> AsinLookupRecord | None:
    cutoff = datetime.now(UTC) - timedelta(hours=max_age_hours)
    async with self._session_factory() as session:
      stmt = select(AsinLookup).where(AsinLookup.asin == asin, AsinLookup.marketplace == marketplace, AsinLookup.updated_at >= cutoff)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return self._model_to_record(row) if row is not None else None

  async def list_lookups(self, *, user_id: str | None, search: str | None = None, limit: int = 100) -> list[AsinLookupRecord]:
    async with self._session_factory() as session:
      stmt = select(AsinLookup).order_by(AsinLookup.updated_at.desc()).limit(limit)
      if user_id is not None:
        stmt = stmt.where(AsinLookup.user_id == user_id)
      if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(AsinLookup.asin.ilike(pattern), AsinLookup.title.ilike(pattern), AsinLookup.brand.ilike(pattern)))
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  @staticmethod
  def _model_to_record(row: AsinLookup) -> AsinLookupRecord:
    return AsinLookupRecord(
      asin=row.asin,
      marketplace=row.marketplace,
      user_id=row.user_id,
      title=row.title,
      brand=row.brand,
      price=float(row.price) if row.price is not None else None,
      rating=float(row.rating) if row.rating is not None else None,
      reviews_count=row.reviews_count,
      raw_data=dict(row.raw_json or {}),
      lookup_id=row.lookup_id,
      updated_at=row.updated_at.isoformat() if row.updated_at else None,
    )
