from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest
from fastapi import BackgroundTasks, HTTPException

from app.api.models import MarketSelectionRequest
from app.jobs.models import JobRecord
from app.services.market_intelligence import select_products, start_collection


def _record(status: str, **overrides) -> JobRecord:
  fields = {
    "job_id": "job-1",
    "user_id": "user-1",
    "job_kind": "market_intelligence",
    "request": {"keywords": ["yoga mat"], "selected_asins": []},
    "status": status,
    "created_at": "2024-01-01T00:00:00Z",
    "updated_at": "2024-01-01T00:00:00Z",
  }
  fields.update(overrides)
  return JobRecord(**fields)


@pytest.fixture
def slow_reads(monkeypatch: pytest.MonkeyPatch, jobs_repo):
  """Make every read yield to the event loop like a database round trip."""
  original = jobs_repo.get_job

  async def _get_job(job_id: str) -> JobRecord | None:
    record = await original(job_id)
    await asyncio.sleep(0)
    return record

  monkeypatch.setattr(jobs_repo, "get_job", _get_job)
  return jobs_repo


@pytest.mark.anyio
async def test_concurrent_collect_calls_start_one_worker(settings, patched_repos, slow_reads) -> None:
  settings = replace(settings, jobs_auto_process=True)
  await slow_reads.create_job(_record("pending"))
  background_tasks = BackgroundTasks()

  results = await asyncio.gather(
    start_collection("job-1", settings, background_tasks, user_id="user-1"),
    start_collection("job-1", settings, background_tasks, user_id="user-1"),
    return_exceptions=True,
  )

  errors = [result for result in results if isinstance(result, HTTPException)]
  assert len(errors) == 1
  assert errors[0].status_code == 400
  assert errors[0].detail == 'Cannot collect: status is "collecting", expected "pending"'
  assert len(background_tasks.tasks) == 1
  assert slow_reads.update_calls == 1


@pytest.mark.anyio
async def test_concurrent_selections_start_one_analysis(settings, patched_repos, slow_reads) -> None:
  settings = replace(settings, jobs_auto_process=True)
  await slow_reads.create_job(_record("awaiting_selection", result_json={"top_asins": ["B0CHX1W1XY", "B0D1234567"]}))
  background_tasks = BackgroundTasks()
  selection = MarketSelectionRequest(selected_asins=["B0CHX1W1XY"])

  results = await asyncio.gather(
    select_products("job-1", selection, settings, background_tasks, user_id="user-1"),
    select_products("job-1", selection, settings, background_tasks, user_id="user-1"),
    return_exceptions=True,
  )

  assert sorted(type(result).__name__ for result in results) == ["HTTPException", "JobStatusResponse"]
  assert len(background_tasks.tasks) == 1
  assert (await slow_reads.get_job("job-1")).request["selected_asins"] == ["B0CHX1W1XY"]


@pytest.mark.anyio
async def test_transition_on_deleted_job_is_not_found(settings, patched_repos, jobs_repo, monkeypatch: pytest.MonkeyPatch) -> None:
  await jobs_repo.create_job(_record("pending"))
  original = jobs_repo.get_job
  reads = 0

  async def _get_job(job_id: str) -> JobRecord | None:
    nonlocal reads
    reads += 1
    record = await original(job_id)
    # The job disappears between the ownership check and the status write.
    if reads == 1:
      await jobs_repo.delete_job(job_id)
    return record

  monkeypatch.setattr(jobs_repo, "get_job", _get_job)
  with pytest.raises(HTTPException) as excinfo:
    await start_collection("job-1", settings, BackgroundTasks(), user_id="user-1")
  assert excinfo.value.status_code == 404
