import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from app.core.database import create_tables, get_db_engine
from app.core.logging import _initialize_logging
from fastapi import FastAPI


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and, when enabled, the database tables; dispose the engine on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:  # noqa: BLE001
    # Console logging still works through the root logger defaults.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  if settings.pg_dsn is None:
    logger.warning("LB_PG_DSN is not set; routes that need persistence will fail.")
  elif settings.create_tables:
    logger.info("Creating missing tables on %s", _redact_dsn(settings.pg_dsn))
    await create_tables()

  for name, configured in (("oxylabs", bool(settings.oxylabs_username and settings.oxylabs_password)), ("apify", bool(settings.apify_api_token))):
    if not configured:
      logger.warning("Scraping provider %s is not configured.", name)

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
