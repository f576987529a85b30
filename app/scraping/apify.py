"""Apify reviews actor adapter."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
from app.core.errors import ProviderError
from app.scraping.models import ApifyReviewItem, Review, ReviewAspect
from pydantic import BaseModel, ConfigDict, Field, ValidationError

APIFY_BASE_URL = "https://api.apify.com/v2"
ACTOR_ID = "delicious_zebu~amazon-reviews-scraper-with-advanced-filters"
PROVIDER = "apify"
POLL_WAIT_SECONDS = 60
MAX_WAIT_SECONDS = 3600
TERMINAL_RUN_STATUSES = {"SUCCEEDED", "FAILED", "TIMED-OUT", "ABORTED"}

logger = logging.getLogger(__name__)


class ApifyRunStats(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  compute_units: float = Field(default=0.0, validation_alias="computeUnits")
  duration_millis: int = Field(default=0, validation_alias="durationMillis")


class ApifyRun(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  id: str
  status: str
  default_dataset_id: str = Field(default="", validation_alias="defaultDatasetId")
  status_message: str | None = Field(default=None, validation_alias="statusMessage")
  stats: ApifyRunStats = Field(default_factory=ApifyRunStats)

  @property
  def finished(self) -> bool:
    return self.status in TERMINAL_RUN_STATUSES


@dataclass
class ApifyReviewsResult:
  reviews: list[Review]
  customers_say: str | None
  review_aspects: list[ReviewAspect] | None
  total_reviews: int | None
  run_id: str
  dataset_id: str
  compute_units: float
  duration_ms: int
  raw_count: int = 0


def build_actor_input(asin: str, amazon_domain: str, *, max_reviews: int, sort_by: str) -> dict[str, Any]:
  """Actor input; every advanced filter is set explicitly because the actor defaults to five star reviews only."""
  return {
    "ASIN_or_URL": [f"https://www.{amazon_domain}/dp/{asin}"],
    "sortBy": "helpful" if sort_by == "helpful" else "recent",
    "filterByRating": "allStars",
    "filter_by_ratings": ["five_star", "four_star", "three_star", "two_star", "one_star"],
    "filter_by_verified_purchase_only": ["all_reviews", "avp_only_reviews"],
    "filter_by_mediaType": ["all_contents", "media_reviews_only"],
    "get_customers_say": True,
    "max_reviews": max_reviews,
  }


def dedupe_reviews(items: list[ApifyReviewItem]) -> list[Review]:
  seen: set[str] = set()
  reviews: list[Review] = []
  for item in items:
    review = item.to_review()
    if not review.id or review.id in seen:
      continue
    seen.add(review.id)
    reviews.append(review)
  return reviews


def _parse_total_reviews(text: str | None, fetched: int) -> int | None:
  """'174 matching customer reviews' -> 174; values below the fetched count are rating text, not totals."""
  if not text:
    return None
  digits = text.strip().split(" ", 1)[0].replace(",", "")
  if not digits.isdigit():
    return None
  total = int(digits)
  return total if total >= fetched else None


class ApifyClient:
  """Runs the reviews actor and reads its dataset."""

  def __init__(
    self,
    api_token: str | None,
    *,
    timeout_seconds: float = 65.0,
    max_wait_seconds: float = MAX_WAIT_SECONDS,
    poll_pause_seconds: float = 1.0,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self._api_token = api_token
    # Each long-poll request holds the connection up to POLL_WAIT_SECONDS.
    self._timeout_seconds = max(timeout_seconds, POLL_WAIT_SECONDS + 5)
    self._max_wait_seconds = max_wait_seconds
    self._poll_pause_seconds = poll_pause_seconds
    self._transport = transport

  @property
  def configured(self) -> bool:
    return bool(self._api_token)

  async def fetch_reviews(self, asin: str, amazon_domain: str, *, max_reviews: int = 100, sort_by: str = "recent") -> ApifyReviewsResult:
    if not self.configured:
      raise ProviderError(PROVIDER, "Apify API token is not configured.")

    logger.info("Apify review fetch asin=%s domain=%s max=%s sort=%s", asin, amazon_domain, max_reviews, sort_by)
    actor_input = build_actor_input(asin, amazon_domain, max_reviews=max_reviews, sort_by=sort_by)
    headers = {"Authorization": f"Bearer {self._api_token}"}
    async with httpx.AsyncClient(base_url=APIFY_BASE_URL, headers=headers, timeout=self._timeout_seconds, transport=self._transport) as client:
      run = await self._start_run(client, actor_input)
      if not run.finished:
        run = await self._poll_until_done(client, run.id)
      if run.status != "SUCCEEDED":
        raise ProviderError(PROVIDER, f"Apify run {run.status}: {run.status_message or 'Unknown error'}")
      raw_items = await self._dataset_items(client, run.default_dataset_id)

    items: list[ApifyReviewItem] = []
    for raw in raw_items:
      try:
        items.append(ApifyReviewItem.model_validate(raw))
      except ValidationError:
        logger.warning("Skipping malformed Apify review item for %s", asin)

    reviews = dedupe_reviews(items)
    first = items[0] if items else None
    aspects = [ReviewAspect.from_actor(raw) for raw in first.review_aspects] if first and first.review_aspects else None
    logger.info("Apify completed asin=%s reviews=%d compute_units=%.4f", asin, len(reviews), run.stats.compute_units)
    return ApifyReviewsResult(
      reviews=reviews,
      customers_say=first.customers_say if first else None,
      review_aspects=aspects,
      total_reviews=_parse_total_reviews(first.total_reviews_text if first else None, len(reviews)),
      run_id=run.id,
      dataset_id=run.default_dataset_id,
      compute_units=run.stats.compute_units,
      duration_ms=run.stats.duration_millis,
      raw_count=len(raw_items),
    )

  async def _start_run(self, client: httpx.AsyncClient, actor_input: dict[str, Any]) -> ApifyRun:
    body = await self._request(client, "POST", f"/acts/{ACTOR_ID}/runs", params={"waitForFinish": POLL_WAIT_SECONDS}, json=actor_input)
    return _parse_run(body)

  async def _poll_until_done(self, client: httpx.AsyncClient, run_id: str) -> ApifyRun:
    started = time.monotonic()
    while time.monotonic() - started < self._max_wait_seconds:
      body = await self._request(client, "GET", f"/actor-runs/{run_id}", params={"waitForFinish": POLL_WAIT_SECONDS})
      run = _parse_run(body)
      if run.finished:
        return run
      await asyncio.sleep(self._poll_pause_seconds)
    raise ProviderError(PROVIDER, f"Apify run did not complete within {self._max_wait_seconds:g}s")

  async def _dataset_items(self, client: httpx.AsyncClient, dataset_id: str) -> list[dict[str, Any]]:
    body = await self._request(client, "GET", f"/datasets/{dataset_id}/items", params={"format": "json"})
    if not isinstance(body, list):
      raise ProviderError(PROVIDER, "Apify dataset response was not a list.")
    return [item for item in body if isinstance(item, dict)]

  async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> Any:
    try:
      response = await client.request(method, url, **kwargs)
      response.raise_for_status()
      return response.json()
    except httpx.TimeoutException as exc:
      raise ProviderError(PROVIDER, f"Apify request timed out: {method} {url}") from exc
    except httpx.HTTPStatusError as exc:
      status_code = exc.response.status_code
      raise ProviderError(PROVIDER, f"Apify API error ({status_code}): {exc.response.text[:500]}", status_code=status_code) from exc
    except httpx.RequestError as exc:
      raise ProviderError(PROVIDER, f"Apify request failed: {exc}") from exc
    except ValueError as exc:
      raise ProviderError(PROVIDER, "Apify returned invalid JSON.") from exc


def _parse_run(body: Any) -> ApifyRun:
  data = body.get("data") if isinstance(body, dict) else None
  try:
    return ApifyRun.model_validate(data)
  except ValidationError as exc:
    raise ProviderError(PROVIDER, "Apify returned an unexpected run payload.") from exc
