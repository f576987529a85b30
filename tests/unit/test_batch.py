from __future__ import annotations

import pytest

from app.core.errors import ProviderError
from app.services.batch import MAX_BATCH_SIZE, BatchValidationError, batch_message, fetch_batch, summary_to_dict


@pytest.mark.anyio
async def test_batch_of_three_with_second_failing() -> None:
  calls: list[str] = []

  async def _fetch(key: str) -> dict[str, str]:
    calls.append(key)
    if key == "B":
      raise ProviderError("oxylabs", "Oxylabs returned HTTP 500 for product B.")
    return {"key": key}

  summary = await fetch_batch(["A", "B", "C"], _fetch)

  assert calls == ["A", "B", "C"]
  assert [item.key for item in summary.results] == ["A", "B", "C"]
  assert [item.success for item in summary.results] == [True, False, True]
  assert summary.results[1].error == "Oxylabs returned HTTP 500 for product B."
  assert summary.message == "Fetched 2, 1 failed."


@pytest.mark.anyio
async def test_all_successful_message_omits_failures() -> None:
  async def _fetch(key: str) -> str:
    return key

  summary = await fetch_batch(["A", "B"], _fetch)
  assert summary.message == "Fetched 2."
  assert batch_message(0, 3) == "Fetched 0, 3 failed."


@pytest.mark.anyio
async def test_empty_and_oversized_batches_are_rejected_before_any_call() -> None:
  async def _fetch(key: str) -> str:
    raise AssertionError("provider must not be called")

  with pytest.raises(BatchValidationError, match="At least one item"):
    await fetch_batch([], _fetch)
  with pytest.raises(BatchValidationError, match=f"Maximum {MAX_BATCH_SIZE}"):
    await fetch_batch([str(index) for index in range(MAX_BATCH_SIZE + 1)], _fetch)


@pytest.mark.anyio
async def test_rejected_key_fails_without_provider_call() -> None:
  calls: list[str] = []

  async def _fetch(key: str) -> str:
    calls.append(key)
    return key

  summary = await fetch_batch(["GOOD", "bad"], _fetch, validate_key=lambda key: None if key.isupper() else "Invalid key")
  assert calls == ["GOOD"]
  assert summary.results[1].error == "Invalid key"
  assert summary.failed == 1


@pytest.mark.anyio
async def test_persist_failure_keeps_item_successful_without_saved_id() -> None:
  async def _fetch(key: str) -> str:
    return key

  async def _persist(key: str, data: str) -> str:
    if key == "B":
      raise ConnectionError("db down")
    return f"saved-{key}"

  summary = await fetch_batch(["A", "B"], _fetch, persist=_persist)
  assert [(item.success, item.saved_id) for item in summary.results] == [(True, "saved-A"), (True, None)]
  assert summary.message == "Fetched 2."


@pytest.mark.anyio
async def test_summary_to_dict_shapes_items() -> None:
  async def _fetch(key: str) -> dict[str, str]:
    if key == "B":
      raise RuntimeError("")
    return {"title": key}

  summary = await fetch_batch(["A", "B"], _fetch)
  payload = summary_to_dict(summary, key_name="asin", serialize=lambda data: data)
  assert payload["results"] == [
    {"asin": "A", "success": True, "data": {"title": "A"}, "saved_id": None},
    {"asin": "B", "success": False, "error": "RuntimeError"},
  ]
  assert (payload["succeeded"], payload["failed"]) == (1, 1)
