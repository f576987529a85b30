from __future__ import annotations

import pytest

from app.config import get_settings


@pytest.fixture
def clean_settings(monkeypatch: pytest.MonkeyPatch):
  get_settings.cache_clear()
  yield monkeypatch
  get_settings.cache_clear()


def test_defaults(clean_settings: pytest.MonkeyPatch) -> None:
  for name in ("LB_AI_PROVIDER", "LB_AI_TIMEOUT_SECONDS", "LB_SCRAPE_TIMEOUT_SECONDS", "LB_POLL_INTERVAL_SECONDS", "LB_DEFAULT_USER_ID", "LB_LOOKUP_CACHE_HOURS"):
    clean_settings.delenv(name, raising=False)
  settings = get_settings()
  assert settings.allowed_origins == ("http://localhost",)
  assert settings.ai_provider == "claude"
  assert settings.ai_timeout_seconds == 180
  assert settings.scrape_timeout_seconds == 65
  assert settings.poll_interval_seconds == 3
  assert settings.lookup_cache_hours == 168
  assert settings.default_user_id == "local-user"
  assert settings.jobs_auto_process is False


def test_wildcard_origin_is_rejected(clean_settings: pytest.MonkeyPatch) -> None:
  clean_settings.setenv("LB_ALLOWED_ORIGINS", "*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_unknown_ai_provider_is_rejected(clean_settings: pytest.MonkeyPatch) -> None:
  clean_settings.setenv("LB_AI_PROVIDER", "mistral")
  with pytest.raises(ValueError, match="LB_AI_PROVIDER"):
    get_settings()


def test_negative_scrape_delay_is_rejected(clean_settings: pytest.MonkeyPatch) -> None:
  clean_settings.setenv("LB_SCRAPE_DELAY_SECONDS", "-1")
  with pytest.raises(ValueError, match="LB_SCRAPE_DELAY_SECONDS"):
    get_settings()
