"""Errors shared by the scraping and AI provider adapters."""

from __future__ import annotations


class ProviderError(RuntimeError):
  """Raised when an external provider call fails or returns an unusable payload."""

  def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.provider = provider
    self.status_code = status_code
