from __future__ import annotations

import anyio
import pytest

from app.jobs.models import JobRecord
from app.jobs.poller import JobNotification, JobStatusSnapshot, ProgressPoller


class StatusScript:
  """Returns queued statuses per job id; an Exception entry is raised instead."""

  def __init__(self, script: dict[str, list[str | Exception]]) -> None:
    self.script = script
    self.calls: list[str] = []

  async def __call__(self, job_id: str) -> JobStatusSnapshot:
    self.calls.append(job_id)
    queue = self.script[job_id]
    entry = queue.pop(0) if len(queue) > 1 else queue[0]
    if isinstance(entry, Exception):
      raise entry
    return JobStatusSnapshot(job_id=job_id, status=entry, error_message="boom" if entry == "failed" else None)


def _record(job_id: str, status: str) -> JobRecord:
  return JobRecord(job_id=job_id, user_id="u", job_kind="market_intelligence", request={"keywords": ["mat"]}, status=status, created_at="t", updated_at="t")


@pytest.mark.anyio
async def test_stops_after_completed_with_single_success_notification() -> None:
  notifications: list[JobNotification] = []

  async def _notify(notification: JobNotification) -> None:
    notifications.append(notification)

  source = StatusScript({"job-1": ["fetching", "fetching", "completed"]})
  poller = ProgressPoller(fetch_status=source, notify=_notify, interval_seconds=0.01)
  poller.track("job-1")
  await poller.run()

  assert [n.kind for n in notifications] == ["succeeded"]
  assert poller.tracked == []
  assert len(source.calls) == 3
  # A finished id is never tracked or notified again.
  assert poller.track("job-1") is False
  assert await poller.poll_once() == []


@pytest.mark.anyio
async def test_fetch_error_keeps_job_tracked() -> None:
  source = StatusScript({"job-1": [ConnectionError("network down"), "failed"]})
  notifications: list[JobNotification] = []

  async def _notify(notification: JobNotification) -> None:
    notifications.append(notification)

  poller = ProgressPoller(fetch_status=source, notify=_notify, interval_seconds=0.01)
  poller.track("job-1")
  assert await poller.poll_once() == []
  assert poller.tracked == ["job-1"]
  await poller.poll_once()
  assert [n.kind for n in notifications] == ["failed"]
  assert notifications[0].message == "boom"


@pytest.mark.anyio
async def test_awaiting_selection_ends_observation() -> None:
  source = StatusScript({"job-1": ["awaiting_selection"], "job-2": ["collecting"]})
  kinds: list[str] = []

  async def _notify(notification: JobNotification) -> None:
    kinds.append(notification.kind)

  poller = ProgressPoller(fetch_status=source, notify=_notify)
  poller.track("job-1")
  poller.track("job-2")
  await poller.poll_once()
  assert kinds == ["awaiting_selection"]
  assert poller.tracked == ["job-2"]


@pytest.mark.anyio
async def test_resume_reattaches_running_jobs_without_resubmitting() -> None:
  source = StatusScript({"job-analyzing": ["analyzing", "completed"]})
  kinds: list[str] = []

  async def _notify(notification: JobNotification) -> None:
    kinds.append(notification.kind)

  poller = ProgressPoller(fetch_status=source, notify=_notify, interval_seconds=0.01)
  resumed = poller.resume([_record("job-analyzing", "analyzing"), _record("job-done", "completed"), _record("job-waiting", "awaiting_selection")])
  assert resumed == ["job-analyzing"]
  await poller.run()
  # Only status reads happened; the analysis request was not re-issued.
  assert source.calls == ["job-analyzing", "job-analyzing"]
  assert kinds == ["succeeded"]


@pytest.mark.anyio
async def test_stop_ends_run_and_a_later_run_resumes_polling() -> None:
  source = StatusScript({"job-1": ["completed"], "job-2": ["pending"]})
  sink_calls: list[str] = []

  async def _notify(notification: JobNotification) -> None:
    sink_calls.append(notification.job_id)
    raise RuntimeError("sink down")

  poller = ProgressPoller(fetch_status=source, notify=_notify, interval_seconds=0.01)
  poller.track("job-1")
  poller.track("job-2")

  async with anyio.create_task_group() as group:
    group.start_soon(poller.run)
    while source.calls.count("job-2") < 2:
      await anyio.sleep(0.005)
    poller.stop()

  # The failing sink was called once and did not end the run.
  assert sink_calls == ["job-1"]
  assert poller.tracked == ["job-2"]

  source.script["job-2"] = ["completed"]
  await poller.run()
  assert sink_calls == ["job-1", "job-2"]
  assert poller.tracked == []


@pytest.mark.anyio
async def test_resume_accepts_snapshots_and_api_payloads() -> None:
  source = StatusScript({"job-1": ["completed"], "job-2": ["completed"]})

  async def _notify(notification: JobNotification) -> None:
    return None

  poller = ProgressPoller(fetch_status=source, notify=_notify)
  resumed = poller.resume(
    [
      JobStatusSnapshot(job_id="job-1", status="collecting"),
      {"job_id": "job-2", "status": "analyzing", "progress": {"step": "phase_2", "current": 2, "total": 4}},
      {"job_id": "job-3", "status": "failed", "error_message": "No products found for any keyword"},
    ]
  )
  assert resumed == ["job-1", "job-2"]
  assert poller.resume([JobStatusSnapshot(job_id="job-1", status="collecting")]) == []


def test_snapshot_from_payload() -> None:
  snapshot = JobStatusSnapshot.from_payload({"job_id": "j", "status": "failed", "error_message": "No products found for any keyword", "progress": {"step": "keyword_search"}})
  assert snapshot.status == "failed"
  assert snapshot.progress == {"step": "keyword_search"}
