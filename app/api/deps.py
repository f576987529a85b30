"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, Header

from app.config import Settings, get_settings

MAX_USER_ID_LENGTH = 128


async def get_current_user_id(x_user_id: str | None = Header(default=None), settings: Settings = Depends(get_settings)) -> str:  # noqa: B008
  """Resolve the acting user from the X-User-Id header, falling back to the configured default user."""
  if x_user_id and x_user_id.strip():
    return x_user_id.strip()[:MAX_USER_ID_LENGTH]
  return settings.default_user_id
