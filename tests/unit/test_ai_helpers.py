from __future__ import annotations

import json

import pytest

from app.ai import backoff
from app.ai.errors import AIProviderError
from app.ai.json_parser import parse_json_with_fallback, strip_json_fences


def test_strip_json_fences() -> None:
  assert strip_json_fences('```json\n{"titles": ["A"]}\n```') == '{"titles": ["A"]}'
  assert strip_json_fences('{"a": 1}') == '{"a": 1}'


def test_parse_recovers_object_from_surrounding_text_and_trailing_commas() -> None:
  raw = 'Here are your titles:\n{"titles": ["A", "B",],}\nLet me know if you need more.'
  assert parse_json_with_fallback(raw) == {"titles": ["A", "B"]}


def test_parse_keeps_braces_inside_strings() -> None:
  raw = 'noise {"bullets": [["Fits {all} sizes"]]} trailing'
  assert parse_json_with_fallback(raw) == {"bullets": [["Fits {all} sizes"]]}


def test_parse_raises_when_nothing_recoverable() -> None:
  with pytest.raises(json.JSONDecodeError):
    parse_json_with_fallback("no json here")


def test_retryable_errors() -> None:
  assert backoff.is_retryable_error(AIProviderError("claude", "overloaded", status_code=529))
  assert backoff.is_retryable_error(RuntimeError("429 Too Many Requests"))
  assert not backoff.is_retryable_error(ValueError("bad payload"))


@pytest.mark.anyio
async def test_retry_uses_fixed_delays_then_final_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
  sleeps: list[float] = []

  async def _sleep(delay: float) -> None:
    sleeps.append(delay)

  monkeypatch.setattr(backoff.asyncio, "sleep", _sleep)
  attempts = 0

  async def _call() -> str:
    nonlocal attempts
    attempts += 1
    if attempts < 4:
      raise RuntimeError("RESOURCE_EXHAUSTED")
    return "ok"

  assert await backoff.retry_with_backoff(_call) == "ok"
  assert sleeps == [5, 20, 50]
  assert attempts == 4


@pytest.mark.anyio
async def test_non_retryable_error_propagates_immediately(monkeypatch: pytest.MonkeyPatch) -> None:
  async def _sleep(delay: float) -> None:
    raise AssertionError("must not sleep")

  monkeypatch.setattr(backoff.asyncio, "sleep", _sleep)

  async def _call() -> str:
    raise ValueError("bad prompt")

  with pytest.raises(ValueError, match="bad prompt"):
    await backoff.retry_with_backoff(_call)
