"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_AI_PROVIDERS = {"claude", "gemini", "openai"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Listing Builder service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  pg_dsn: str | None
  pg_connect_timeout: int
  create_tables: bool
  jobs_auto_process: bool
  ai_provider: str
  ai_model: str | None
  ai_timeout_seconds: float
  anthropic_api_key: str | None
  gemini_api_key: str | None
  openai_api_key: str | None
  oxylabs_username: str | None
  oxylabs_password: str | None
  apify_api_token: str | None
  scrape_timeout_seconds: float
  scrape_delay_seconds: float
  lookup_cache_hours: int
  poll_interval_seconds: float
  default_user_id: str


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("LB_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("LB_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("LB_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LB_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("LB_DEBUG"))

  log_max_bytes = int(os.getenv("LB_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("LB_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("LB_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("LB_LOG_BACKUP_COUNT must be zero or a positive integer.")

  log_http_body_bytes = int(os.getenv("LB_LOG_HTTP_BODY_BYTES", "2048"))
  if log_http_body_bytes <= 0:
    raise ValueError("LB_LOG_HTTP_BODY_BYTES must be a positive integer.")

  pg_connect_timeout = int(os.getenv("LB_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("LB_PG_CONNECT_TIMEOUT must be a positive integer.")

  ai_provider = (os.getenv("LB_AI_PROVIDER") or "claude").strip().lower()
  if ai_provider not in _AI_PROVIDERS:
    raise ValueError(f"LB_AI_PROVIDER must be one of {sorted(_AI_PROVIDERS)}.")

  scrape_delay_seconds = float(os.getenv("LB_SCRAPE_DELAY_SECONDS", "2"))
  if scrape_delay_seconds < 0:
    raise ValueError("LB_SCRAPE_DELAY_SECONDS must be zero or a positive number.")

  lookup_cache_hours = int(os.getenv("LB_LOOKUP_CACHE_HOURS", "168"))
  if lookup_cache_hours < 0:
    raise ValueError("LB_LOOKUP_CACHE_HOURS must be zero or a positive integer.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("LB_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("LB_LOG_HTTP_4XX")),
    log_http_bodies=_parse_bool(os.getenv("LB_LOG_HTTP_BODIES")),
    log_http_body_bytes=log_http_body_bytes,
    pg_dsn=_optional_str(os.getenv("LB_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=pg_connect_timeout,
    create_tables=_parse_bool(os.getenv("LB_CREATE_TABLES")),
    jobs_auto_process=_parse_bool(os.getenv("LB_JOBS_AUTO_PROCESS"), default=True),
    ai_provider=ai_provider,
    ai_model=_optional_str(os.getenv("LB_AI_MODEL")),
    ai_timeout_seconds=_parse_positive_float("LB_AI_TIMEOUT_SECONDS", "180"),
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    oxylabs_username=_optional_str(os.getenv("OXYLABS_USERNAME")),
    oxylabs_password=_optional_str(os.getenv("OXYLABS_PASSWORD")),
    apify_api_token=_optional_str(os.getenv("APIFY_API_TOKEN")),
    scrape_timeout_seconds=_parse_positive_float("LB_SCRAPE_TIMEOUT_SECONDS", "65"),
    scrape_delay_seconds=scrape_delay_seconds,
    lookup_cache_hours=lookup_cache_hours,
    poll_interval_seconds=_parse_positive_float("LB_POLL_INTERVAL_SECONDS", "3"),
    default_user_id=(os.getenv("LB_DEFAULT_USER_ID") or "local-user").strip(),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("LB_DEBUG"))
  pg_connect_timeout = int(os.getenv("LB_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("LB_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = _optional_str(os.getenv("LB_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
