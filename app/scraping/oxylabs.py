"""Oxylabs realtime scraper adapter for Amazon sources."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from app.core.errors import ProviderError
from app.scraping.models import ProductDetails, QuestionsPage, ReviewsPage, SearchResults
from pydantic import BaseModel, ValidationError

OXYLABS_URL = "https://realtime.oxylabs.io/v1/queries"
PROVIDER = "oxylabs"
REVIEW_SORTS = {"helpful", "recent"}

logger = logging.getLogger(__name__)

ContentT = TypeVar("ContentT", bound=BaseModel)


class OxylabsClient:
  """Thin wrapper over the realtime endpoint; one request per call, no retries."""

  def __init__(self, username: str | None, password: str | None, *, timeout_seconds: float = 65.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._username = username
    self._password = password
    self._timeout_seconds = timeout_seconds
    self._transport = transport

  @property
  def configured(self) -> bool:
    return bool(self._username and self._password)

  async def lookup_asin(self, asin: str, *, domain: str = "com") -> ProductDetails:
    payload = {"source": "amazon_product", "query": asin, "domain": domain, "parse": True}
    return await self._query(payload, ProductDetails, label=f"product {asin}")

  async def search_keyword(self, keyword: str, *, domain: str = "com", pages: int = 1) -> SearchResults:
    payload = {"source": "amazon_search", "query": keyword, "domain": domain, "pages": pages, "parse": True}
    return await self._query(payload, SearchResults, label=f"search '{keyword}'")

  async def fetch_reviews(self, asin: str, *, domain: str = "com", sort_by: str = "recent", pages: int = 1) -> ReviewsPage:
    if sort_by not in REVIEW_SORTS:
      raise ValueError(f"sort_by must be one of {sorted(REVIEW_SORTS)}.")
    payload = {
      "source": "amazon_reviews",
      "query": asin,
      "domain": domain,
      "pages": pages,
      "parse": True,
      "context": [{"key": "sort_by", "value": sort_by}],
    }
    return await self._query(payload, ReviewsPage, label=f"reviews {asin}")

  async def fetch_questions(self, asin: str, *, domain: str = "com") -> QuestionsPage:
    payload = {"source": "amazon_questions", "query": asin, "domain": domain, "parse": True}
    return await self._query(payload, QuestionsPage, label=f"questions {asin}")

  async def _query(self, payload: dict[str, Any], model: type[ContentT], *, label: str) -> ContentT:
    if not self.configured:
      raise ProviderError(PROVIDER, "Oxylabs credentials are not configured.")

    logger.info("Oxylabs request source=%s query=%s domain=%s", payload["source"], payload["query"], payload["domain"])
    try:
      async with httpx.AsyncClient(auth=(self._username, self._password), timeout=self._timeout_seconds, transport=self._transport) as client:
        response = await client.post(OXYLABS_URL, json=payload)
        response.raise_for_status()
        body = response.json()
    except httpx.TimeoutException as exc:
      raise ProviderError(PROVIDER, f"Oxylabs timed out fetching {label}.") from exc
    except httpx.HTTPStatusError as exc:
      status_code = exc.response.status_code
      logger.warning("Oxylabs returned %s for %s: %s", status_code, label, exc.response.text[:500])
      raise ProviderError(PROVIDER, f"Oxylabs returned HTTP {status_code} for {label}.", status_code=status_code) from exc
    except httpx.RequestError as exc:
      raise ProviderError(PROVIDER, f"Oxylabs request failed for {label}: {exc}") from exc
    except ValueError as exc:
      raise ProviderError(PROVIDER, f"Oxylabs returned invalid JSON for {label}.") from exc

    content = _first_content(body)
    if content is None:
      raise ProviderError(PROVIDER, f"Oxylabs returned no content for {label}.")
    # Parse failures come back as content with a parse_status_code other than 12000.
    parse_status = content.get("parse_status_code")
    if parse_status is not None and parse_status != 12000 and not content.get("asin") and "results" not in content:
      raise ProviderError(PROVIDER, f"Oxylabs could not parse {label} (status {parse_status}).")
    try:
      return model.model_validate(content)
    except ValidationError as exc:
      raise ProviderError(PROVIDER, f"Oxylabs returned an unexpected payload for {label}.") from exc


def _first_content(body: Any) -> dict[str, Any] | None:
  if not isinstance(body, dict):
    return None
  results = body.get("results")
  if not isinstance(results, list) or not results:
    return None
  content = results[0].get("content") if isinstance(results[0], dict) else None
  return content if isinstance(content, dict) else None
