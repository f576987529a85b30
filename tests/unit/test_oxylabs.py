from __future__ import annotations

import base64
import json

import httpx
import pytest

from app.core.errors import ProviderError
from app.scraping.oxylabs import OXYLABS_URL, OxylabsClient


def _client(handler) -> OxylabsClient:
  return OxylabsClient("user", "pass", timeout_seconds=5, transport=httpx.MockTransport(handler))


def _content(content: dict) -> dict:
  return {"results": [{"content": content, "status_code": 200}]}


@pytest.mark.anyio
async def test_lookup_asin_sends_product_query_and_coerces_fields() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json=_content({"asin": "B0CHX1W1XY", "title": "Cork Yoga Mat", "manufacturer": "Acme", "price": "$29.99", "rating": "4.6 out of 5", "reviews_count": "1,204 ratings", "parse_status_code": 12000}))

  product = await _client(handler).lookup_asin("B0CHX1W1XY", domain="de")

  assert str(seen[0].url) == OXYLABS_URL
  assert seen[0].headers["authorization"] == "Basic " + base64.b64encode(b"user:pass").decode()
  assert json.loads(seen[0].content) == {"source": "amazon_product", "query": "B0CHX1W1XY", "domain": "de", "parse": True}
  assert product.brand == "Acme"
  assert product.price == 29.99
  assert product.rating == 4.6
  assert product.reviews_count == 1204


@pytest.mark.anyio
async def test_http_error_becomes_provider_error_with_status() -> None:
  client = _client(lambda request: httpx.Response(503, text="upstream busy"))
  with pytest.raises(ProviderError) as excinfo:
    await client.lookup_asin("B0CHX1W1XY")
  assert excinfo.value.status_code == 503
  assert str(excinfo.value) == "Oxylabs returned HTTP 503 for product B0CHX1W1XY."


@pytest.mark.anyio
async def test_timeout_becomes_provider_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("slow", request=request)

  with pytest.raises(ProviderError, match="timed out fetching search 'yoga mat'"):
    await _client(handler).search_keyword("yoga mat")


@pytest.mark.anyio
async def test_unparsed_content_and_empty_results_are_rejected() -> None:
  with pytest.raises(ProviderError, match="could not parse"):
    await _client(lambda request: httpx.Response(200, json=_content({"parse_status_code": 12004}))).lookup_asin("B0CHX1W1XY")
  with pytest.raises(ProviderError, match="no content"):
    await _client(lambda request: httpx.Response(200, json={"results": []})).lookup_asin("B0CHX1W1XY")


@pytest.mark.anyio
async def test_search_ranks_organic_before_paid_without_duplicates() -> None:
  payload = _content({"query": "yoga mat", "results": {"organic": [{"asin": "B000000001"}, {"asin": "B000000002"}], "paid": [{"asin": "B000000002"}, {"asin": "B000000003", "is_sponsored": True}]}})
  results = await _client(lambda request: httpx.Response(200, json=payload)).search_keyword("yoga mat")
  assert results.ranked_asins() == ["B000000001", "B000000002", "B000000003"]


@pytest.mark.anyio
async def test_reviews_pass_sort_context_and_reject_unknown_sort() -> None:
  seen: list[dict] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(json.loads(request.content))
    return httpx.Response(200, json=_content({"asin": "B0CHX1W1XY", "reviews": [{"id": "R1", "rating": "5.0 out of 5 stars", "helpful_count": "One person found this helpful", "is_verified": "Verified Purchase"}]}))

  client = _client(handler)
  page = await client.fetch_reviews("B0CHX1W1XY", sort_by="helpful")
  assert seen[0]["context"] == [{"key": "sort_by", "value": "helpful"}]
  review = page.reviews[0]
  assert (review.rating, review.helpful_count, review.is_verified) == (5.0, 1, True)

  with pytest.raises(ValueError, match="sort_by"):
    await client.fetch_reviews("B0CHX1W1XY", sort_by="oldest")


@pytest.mark.anyio
async def test_missing_credentials_fail_without_a_request() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise AssertionError("no request expected")

  client = OxylabsClient(None, None, transport=httpx.MockTransport(handler))
  assert client.configured is False
  with pytest.raises(ProviderError, match="not configured"):
    await client.fetch_questions("B0CHX1W1XY")
