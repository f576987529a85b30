from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from app.utils import db_retry
from app.utils.db_retry import classify_db_failure, execute_with_retry


def test_connection_errors_are_retryable_and_integrity_errors_are_not() -> None:
  assert classify_db_failure(ConnectionError("connection reset by peer")).category == "connectivity_error"
  assert classify_db_failure(ConnectionError("connection reset by peer")).retryable is True

  integrity = classify_db_failure(IntegrityError("INSERT", {}, Exception("duplicate key")))
  assert integrity.retryable is False
  assert integrity.category == "integrity_error"


@pytest.mark.anyio
async def test_transient_failure_is_retried_then_succeeds(monkeypatch: pytest.MonkeyPatch) -> None:
  sleeps: list[float] = []

  async def _sleep(seconds: float) -> None:
    sleeps.append(seconds)

  monkeypatch.setattr(db_retry.asyncio, "sleep", _sleep)
  attempts = 0

  async def _write() -> str:
    nonlocal attempts
    attempts += 1
    if attempts < 3:
      raise ConnectionError("lost connection")
    return "saved"

  assert await execute_with_retry(operation_name="update_job:job-1", func=_write) == "saved"
  assert attempts == 3
  assert len(sleeps) == 2


@pytest.mark.anyio
async def test_permanent_failure_is_raised_without_retry() -> None:
  attempts = 0

  async def _write() -> None:
    nonlocal attempts
    attempts += 1
    raise ValueError("bad payload")

  with pytest.raises(ValueError):
    await execute_with_retry(operation_name="update_job:job-1", func=_write)
  assert attempts == 1
