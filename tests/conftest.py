"""Shared fixtures: environment, in-memory repositories and a scripted AI model."""

from __future__ import annotations

import json
import os
import time
from dataclasses import replace
from typing import Any

# Ensure required settings are available before importing the app.
os.environ["LB_ALLOWED_ORIGINS"] = "http://localhost"
os.environ["LB_JOBS_AUTO_PROCESS"] = "0"
os.environ["LB_SCRAPE_DELAY_SECONDS"] = "0"
os.environ.pop("LB_PG_DSN", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.ai.errors import AIProviderError  # noqa: E402
from app.ai.providers.base import AIModel, SimpleModelResponse  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.jobs.models import JobRecord  # noqa: E402
from app.listings.models import GenerationJob  # noqa: E402
from app.storage.lookups_repo import AsinLookupRecord  # noqa: E402


def _now() -> str:
  return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class InMemoryJobsRepo:
  """In-memory jobs repository mirroring the Postgres merge semantics."""

  def __init__(self) -> None:
    self.jobs: dict[str, JobRecord] = {}
    self.update_calls = 0

  async def create_job(self, record: JobRecord) -> None:
    self.jobs[record.job_id] = record

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self.jobs.get(job_id)

  async def update_job(self, job_id: str, *, expected_status: str | None = None, **kwargs: Any) -> JobRecord | None:
    record = self.jobs.get(job_id)
    if record is None or (expected_status is not None and record.status != expected_status):
      return None
    self.update_calls += 1
    changes = {key: value for key, value in kwargs.items() if value is not None}
    changes.setdefault("updated_at", _now())
    updated = replace(record, **changes)
    self.jobs[job_id] = updated
    return updated

  async def list_jobs(self, *, user_id: str | None, job_kind: str, limit: int = 50) -> list[JobRecord]:
    records = [record for record in self.jobs.values() if record.job_kind == job_kind and record.user_id == user_id]
    return sorted(records, key=lambda record: record.created_at, reverse=True)[:limit]

  async def delete_job(self, job_id: str) -> bool:
    return self.jobs.pop(job_id, None) is not None


class InMemoryListingsRepo:
  def __init__(self) -> None:
    self.listings: dict[str, GenerationJob] = {}
    self.saves: list[GenerationJob] = []

  async def create_listing(self, job: GenerationJob) -> None:
    self.listings[job.listing_id] = job

  async def get_listing(self, listing_id: str) -> GenerationJob | None:
    return self.listings.get(listing_id)

  async def save_listing(self, job: GenerationJob) -> GenerationJob:
    updated = replace(job, updated_at=_now())
    self.listings[job.listing_id] = updated
    self.saves.append(updated)
    return updated

  async def list_listings(self, *, user_id: str | None, limit: int = 50) -> list[GenerationJob]:
    jobs = [job for job in self.listings.values() if job.user_id == user_id]
    return sorted(jobs, key=lambda job: job.updated_at, reverse=True)[:limit]


class InMemoryLookupsRepo:
  def __init__(self) -> None:
    self.lookups: dict[tuple[str, str], AsinLookupRecord] = {}
    self.fail_upserts = False

  async def upsert_lookup(self, record: AsinLookupRecord) -> str:
    if self.fail_upserts:
      raise ConnectionError("database unavailable")
    key = (record.asin, record.marketplace)
    lookup_id = self.lookups[key].lookup_id if key in self.lookups else f"lookup-{len(self.lookups) + 1}"
    self.lookups[key] = replace(record, lookup_id=lookup_id, updated_at=_now())
    return lookup_id

  async def get_recent(self, asin: str, marketplace: str, *, max_age_hours: int) -> AsinLookupRecord | None:
    return self.lookups.get((asin, marketplace))

  async def list_lookups(self, *, user_id: str | None, search: str | None = None, limit: int = 100) -> list[AsinLookupRecord]:
    records = [record for record in self.lookups.values() if record.user_id == user_id]
    if search:
      needle = search.lower()
      records = [record for record in records if needle in record.asin.lower() or needle in (record.title or "").lower() or needle in (record.brand or "").lower()]
    return records[:limit]


class ScriptedModel(AIModel):
  """AI model that replays queued JSON payloads or exceptions in order."""

  name = "scripted-model"
  provider_name = "scripted"

  def __init__(self, *responses: dict[str, Any] | Exception, tokens: int = 100) -> None:
    self.responses: list[dict[str, Any] | Exception] = list(responses)
    self.prompts: list[str] = []
    self.tokens = tokens

  def queue(self, *responses: dict[str, Any] | Exception) -> None:
    self.responses.extend(responses)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    self.prompts.append(prompt)
    if not self.responses:
      raise AIProviderError(self.provider_name, "No scripted response left.")
    response = self.responses.pop(0)
    if isinstance(response, Exception):
      raise response
    return SimpleModelResponse(content=json.dumps(response), usage={"total_tokens": self.tokens})


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def settings():
  get_settings.cache_clear()
  yield get_settings()
  get_settings.cache_clear()


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def listings_repo() -> InMemoryListingsRepo:
  return InMemoryListingsRepo()


@pytest.fixture
def lookups_repo() -> InMemoryLookupsRepo:
  return InMemoryLookupsRepo()


@pytest.fixture
def scripted_model_cls() -> type[ScriptedModel]:
  return ScriptedModel


@pytest.fixture
def patched_repos(monkeypatch: pytest.MonkeyPatch, jobs_repo: InMemoryJobsRepo, listings_repo: InMemoryListingsRepo, lookups_repo: InMemoryLookupsRepo):
  """Replace every repository factory the services use with the in-memory doubles."""
  for module in ("app.services.jobs", "app.services.reviews", "app.services.market_intelligence", "app.services.export"):
    monkeypatch.setattr(f"{module}._get_jobs_repo", lambda _settings: jobs_repo)
  for module in ("app.services.asin_lookup", "app.services.jobs"):
    monkeypatch.setattr(f"{module}._get_lookups_repo", lambda _settings: lookups_repo)
  monkeypatch.setattr("app.services.listings._get_listings_repo", lambda _settings: listings_repo)
  return jobs_repo, listings_repo, lookups_repo


@pytest.fixture
async def api_client(settings, patched_repos):
  from app.main import app

  app.dependency_overrides[get_settings] = lambda: settings
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers={"x-user-id": "user-1"}) as client:
    yield client
  app.dependency_overrides.clear()
