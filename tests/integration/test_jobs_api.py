from __future__ import annotations

from dataclasses import replace

import anyio
import pytest

from app.config import get_settings
from app.jobs.events import get_event_hub
from app.jobs.models import JobProgress


async def _create_market_job(api_client, **overrides) -> dict:
  payload = {"keywords": [" Yoga Mat ", "yoga mat", "cork mat"], "country": "DE", **overrides}
  response = await api_client.post("/v1/market-intelligence", json=payload)
  assert response.status_code == 201
  return response.json()


@pytest.mark.anyio
async def test_reviews_job_is_queued_and_exported_when_complete(api_client, jobs_repo) -> None:
  created = await api_client.post("/v1/reviews", json={"asin": " b0chx1w1xy", "country": "UK", "max_reviews": 20, "sort_by": "helpful"})

  assert created.status_code == 202
  job = created.json()
  assert job["status"] == "pending"
  assert job["progress"]["step"] == "queued"
  assert job["request"]["asin"] == "B0CHX1W1XY"
  assert job["request"]["scraper_domain"] == "co.uk"
  job_id = job["job_id"]

  not_ready = await api_client.get(f"/v1/reviews/{job_id}/export")
  assert not_ready.status_code == 409

  reviews = [{"rating": 4.0, "title": 'Says "grippy"', "content": "Good, thick.", "author": "Sam", "is_verified": True, "helpful_count": 2, "timestamp": "May 2, 2025", "product_attributes": "Color: Blue", "images": ["a.jpg"]}]
  await jobs_repo.update_job(job_id, status="completed", result_json={"asin": "B0CHX1W1XY", "reviews": reviews})

  exported = await api_client.get(f"/v1/reviews/{job_id}/export")
  assert exported.status_code == 200
  assert exported.headers["content-disposition"].startswith('attachment; filename="reviews-B0CHX1W1XY-')
  assert exported.text.split("\n") == [
    "ASIN,Rating,Title,Content,Author,Verified,Helpful Count,Date,Variant,Images",
    'B0CHX1W1XY,4,"Says ""grippy""","Good, thick.","Sam",Yes,2,"May 2, 2025","Color: Blue",1',
  ]

  listed = (await api_client.get("/v1/reviews")).json()["data"]
  assert [item["job_id"] for item in listed] == [job_id]


@pytest.mark.anyio
async def test_reviews_job_rejects_bad_asin(api_client, jobs_repo) -> None:
  response = await api_client.post("/v1/reviews", json={"asin": "B0CH"})
  assert response.status_code == 400
  assert response.json()["detail"] == "Invalid ASIN format (must be 10 alphanumeric characters)"
  assert jobs_repo.jobs == {}


@pytest.mark.anyio
async def test_background_processing_records_provider_failure(api_client, jobs_repo, settings) -> None:
  from app.main import app

  app.dependency_overrides[get_settings] = lambda: replace(settings, jobs_auto_process=True, oxylabs_username=None, oxylabs_password=None, apify_api_token=None)

  created = await api_client.post("/v1/reviews", json={"asin": "B0CHX1W1XY"})

  record = jobs_repo.jobs[created.json()["job_id"]]
  assert record.status == "failed"
  assert record.error_message == "Oxylabs credentials are not configured."


@pytest.mark.anyio
async def test_market_job_walks_through_status_guards(api_client, jobs_repo) -> None:
  job = await _create_market_job(api_client, max_competitors=50)
  job_id = job["job_id"]
  assert job["status"] == "pending"
  assert job["request"]["keywords"] == ["yoga mat", "cork mat"]
  assert job["request"]["max_competitors"] == 20
  assert job["request"]["amazon_domain"] == "amazon.de"

  early = await api_client.post(f"/v1/market-intelligence/{job_id}/select", json={"selected_asins": ["B000000001"]})
  assert early.status_code == 400
  assert early.json()["detail"] == 'Cannot select: status is "pending", expected "awaiting_selection"'

  collecting = await api_client.post(f"/v1/market-intelligence/{job_id}/collect")
  assert collecting.status_code == 202
  assert collecting.json()["status"] == "collecting"
  again = await api_client.post(f"/v1/market-intelligence/{job_id}/collect")
  assert again.json()["detail"] == 'Cannot collect: status is "collecting", expected "pending"'

  await jobs_repo.update_job(job_id, status="awaiting_selection", result_json={"top_asins": ["B000000001", "B000000002"], "competitors": []}, progress=JobProgress(step="awaiting_selection"))

  unknown = await api_client.post(f"/v1/market-intelligence/{job_id}/select", json={"selected_asins": ["B000000001", "B000000009"]})
  assert unknown.status_code == 400
  assert unknown.json()["detail"] == "Not among the collected products: B000000009"

  selected = await api_client.post(f"/v1/market-intelligence/{job_id}/select", json={"selected_asins": ["b000000002", "B000000002"]})
  assert selected.status_code == 202
  body = selected.json()
  assert body["status"] == "analyzing"
  assert body["request"]["selected_asins"] == ["B000000002"]
  assert body["progress"] == {"step": "review_fetch", "current": 0, "total": 1, "message": "Products confirmed. Starting analysis..."}


@pytest.mark.anyio
async def test_market_job_validation_ownership_and_delete(api_client, jobs_repo) -> None:
  blank = await api_client.post("/v1/market-intelligence", json={"keywords": ["  "]})
  assert blank.status_code == 422
  assert "input" not in blank.json()["detail"][0]

  too_many = await api_client.post("/v1/market-intelligence", json={"keywords": ["a", "b", "c", "d", "e", "f"]})
  assert too_many.status_code == 422

  job_id = (await _create_market_job(api_client))["job_id"]
  assert (await api_client.get(f"/v1/market-intelligence/{job_id}", headers={"x-user-id": "user-2"})).status_code == 403
  assert (await api_client.get(f"/v1/reviews/{job_id}")).status_code == 404
  assert [item["job_id"] for item in (await api_client.get("/v1/market-intelligence")).json()["data"]] == [job_id]

  deleted = await api_client.delete(f"/v1/market-intelligence/{job_id}")
  assert deleted.json() == {"deleted": True}
  assert (await api_client.get(f"/v1/market-intelligence/{job_id}")).status_code == 404


@pytest.mark.anyio
async def test_job_status_long_poll_returns_on_change(api_client, jobs_repo) -> None:
  job_id = (await _create_market_job(api_client))["job_id"]
  hub = get_event_hub()
  responses: list[dict] = []

  async def _poll() -> None:
    response = await api_client.get(f"/v1/jobs/{job_id}", params={"wait_seconds": 10})
    responses.append(response.json())

  with anyio.fail_after(5):
    async with anyio.create_task_group() as group:
      group.start_soon(_poll)
      while hub.waiter_count(job_id) == 0:
        await anyio.sleep(0)
      updated = await jobs_repo.update_job(job_id, status="collecting", progress=JobProgress(step="keyword_search", current=1, total=2, message='Searching keyword "cork mat" (2/2)...'))
      hub.publish(updated)

  assert responses[0]["status"] == "collecting"
  assert responses[0]["progress"]["current"] == 1


@pytest.mark.anyio
async def test_job_status_returns_immediately_for_terminal_jobs(api_client, jobs_repo) -> None:
  job_id = (await _create_market_job(api_client))["job_id"]
  await jobs_repo.update_job(job_id, status="failed", error_message="No products found for any keyword")

  with anyio.fail_after(2):
    response = await api_client.get(f"/v1/jobs/{job_id}", params={"wait_seconds": 30})

  assert response.json()["error_message"] == "No products found for any keyword"
  too_long = await api_client.get(f"/v1/jobs/{job_id}", params={"wait_seconds": 31})
  assert too_long.status_code == 422
