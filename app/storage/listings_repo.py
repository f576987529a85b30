"""Storage interface for listings in progress."""

from __future__ import annotations

from typing import Protocol

from app.listings.models import GenerationJob


class ListingsRepository(Protocol):
  """Repository contract for listing persistence."""

  async def create_listing(self, job: GenerationJob) -> None:
    """Persist a new listing with its sections."""

  async def get_listing(self, listing_id: str) -> GenerationJob | None:
    """Fetch a listing and its sections."""

  async def save_listing(self, job: GenerationJob) -> GenerationJob:
    """Replace the stored listing state, sections included."""

  async def list_listings(self, *, user_id: str | None, limit: int = 50) -> list[GenerationJob]:
    """List a user's listings, most recently updated first."""
