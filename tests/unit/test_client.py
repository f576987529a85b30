from __future__ import annotations

import json

import httpx
import pytest

from app.ai.errors import GenerationTimeoutError
from app.client import ListingBuilderAPIError, ListingBuilderClient


@pytest.mark.anyio
async def test_lookup_sends_user_header_and_payload() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"success": True, "message": "Fetched 1 ASIN.", "results": []})

  async with ListingBuilderClient("http://api.test/", user_id="user-9", transport=httpx.MockTransport(handler)) as client:
    body = await client.lookup_asins(["B0CHX1W1XY"], country="DE")

  assert body["message"] == "Fetched 1 ASIN."
  assert seen[0].url.path == "/v1/asin-lookup"
  assert seen[0].headers["x-user-id"] == "user-9"
  assert json.loads(seen[0].content) == {"asins": ["B0CHX1W1XY"], "country": "DE"}


@pytest.mark.anyio
async def test_error_response_raises_with_server_detail() -> None:
  transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"detail": "Bullet 3 has no final text."}))
  async with ListingBuilderClient("http://api.test", transport=transport) as client:
    with pytest.raises(ListingBuilderAPIError) as excinfo:
      await client.confirm_phase("listing-1", {"bullet_1": "One"})
  assert excinfo.value.status_code == 400
  assert str(excinfo.value) == "Bullet 3 has no final text."


@pytest.mark.anyio
async def test_generation_timeout_is_reported_as_generation_timeout() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("slow", request=request)

  async with ListingBuilderClient("http://api.test", transport=httpx.MockTransport(handler)) as client:
    with pytest.raises(GenerationTimeoutError) as excinfo:
      await client.generate_phase("title", product={"product_name": "Mat", "brand": "Acme"})
  assert excinfo.value.timeout_seconds == 180


@pytest.mark.anyio
async def test_job_snapshot_passes_wait_seconds() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"job_id": "job-1", "status": "analyzing", "progress": {"step": "qna_fetch", "current": 1, "total": 2, "message": ""}})

  async with ListingBuilderClient("http://api.test", transport=httpx.MockTransport(handler)) as client:
    await client.get_job("job-1", wait_seconds=5)
    snapshot = await client.job_snapshot("job-1")

  assert seen[0].url.params["wait_seconds"] == "5"
  assert "wait_seconds" not in seen[1].url.params
  assert snapshot.status == "analyzing"
  assert snapshot.progress["step"] == "qna_fetch"
