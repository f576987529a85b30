"""Repository factories used by services and workers."""

from __future__ import annotations

from app.config import Settings
from app.storage.jobs_repo import JobsRepository
from app.storage.listings_repo import ListingsRepository
from app.storage.lookups_repo import AsinLookupsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository
from app.storage.postgres_listings_repo import PostgresListingsRepository
from app.storage.postgres_lookups_repo import PostgresAsinLookupsRepository


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the background jobs repository."""
  _ = settings
  return PostgresJobsRepository()


def _get_listings_repo(settings: Settings) -> ListingsRepository:
  """Return the listings repository."""
  _ = settings
  return PostgresListingsRepository()


def _get_lookups_repo(settings: Settings) -> AsinLookupsRepository:
  """Return the ASIN lookups repository."""
  _ = settings
  return PostgresAsinLookupsRepository()
