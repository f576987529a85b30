"""AI generation errors."""

from __future__ import annotations

from app.core.errors import ProviderError


class AIProviderError(ProviderError):
  """Raised when a model call fails or returns output that cannot be used."""


class GenerationTimeoutError(AIProviderError):
  """Raised when a generation call exceeds the configured timeout."""

  def __init__(self, provider: str, timeout_seconds: float) -> None:
    super().__init__(provider, f"Generation timed out after {timeout_seconds:g} seconds. Please try again.")
    self.timeout_seconds = timeout_seconds
