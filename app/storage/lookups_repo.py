"""Storage interface for saved ASIN lookups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class AsinLookupRecord:
  """A product lookup saved for reuse by listings and market intelligence."""

  asin: str
  marketplace: str
  user_id: str | None
  title: str | None
  brand: str | None
  price: float | None
  rating: float | None
  reviews_count: int | None
  raw_data: dict[str, Any] = field(default_factory=dict)
  lookup_id: str | None = None
  updated_at: str | None = None


class AsinLookupsRepository(Protocol):
  """Repository contract for ASIN lookups."""

  async def upsert_lookup(self, record: AsinLookupRecord) -> str:
    """Insert or refresh the lookup for (asin, marketplace), returning its id."""

  async def get_recent(self, asin: str, marketplace: str, *, max_age_hours: int) -> AsinLookupRecord | None:
    """Return a lookup refreshed within max_age_hours, if any."""

  async def list_lookups(self, *, user_id: str | None, search: str | None = None, limit: int = 100) -> list[AsinLookupRecord]:
    """List saved lookups, optionally filtered by ASIN or title."""
