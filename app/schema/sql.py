from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

_UTC_ISO_DEFAULT = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Listing(Base):
  __tablename__ = "listings"

  listing_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  phase: Mapped[str] = mapped_column(String, nullable=False, default="pending")
  status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
  marketplace: Mapped[str] = mapped_column(String(8), nullable=False)
  product_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  keywords_json: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  keyword_coverage_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  backend_attributes_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  notes: Mapped[str | None] = mapped_column(Text, nullable=True)
  model_used: Mapped[str | None] = mapped_column(String, nullable=True)
  tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  generation_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_ISO_DEFAULT)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_ISO_DEFAULT)

  sections: Mapped[list[ListingSection]] = relationship(back_populates="listing", cascade="all, delete-orphan", lazy="selectin")


class ListingSection(Base):
  __tablename__ = "listing_sections"
  __table_args__ = (UniqueConstraint("listing_id", "section_type", name="ux_listing_sections_listing_type"),)

  section_id: Mapped[str] = mapped_column(String, primary_key=True)
  listing_id: Mapped[str] = mapped_column(ForeignKey("listings.listing_id", ondelete="CASCADE"), nullable=False, index=True)
  section_type: Mapped[str] = mapped_column(String, nullable=False)
  variations: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  selected_variation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  final_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

  listing: Mapped[Listing] = relationship(back_populates="sections")


class AsinLookup(Base):
  __tablename__ = "asin_lookups"
  __table_args__ = (UniqueConstraint("asin", "marketplace", name="ux_asin_lookups_asin_marketplace"),)

  lookup_id: Mapped[str] = mapped_column(String, primary_key=True)
  asin: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
  marketplace: Mapped[str] = mapped_column(String(8), nullable=False)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  title: Mapped[str | None] = mapped_column(Text, nullable=True)
  brand: Mapped[str | None] = mapped_column(String, nullable=True)
  price: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
  rating: Mapped[float | None] = mapped_column(Numeric(3, 2), nullable=True)
  reviews_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
  raw_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class BackgroundJob(Base):
  __tablename__ = "background_jobs"

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  job_kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  progress_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  logs_json: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_ISO_DEFAULT)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_ISO_DEFAULT)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
