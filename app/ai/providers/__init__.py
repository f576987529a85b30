"""Provider implementations."""

from __future__ import annotations

from app.ai.providers.base import AIModel, Provider, SimpleModelResponse, StructuredModelResponse
from app.ai.providers.claude import ClaudeProvider
from app.ai.providers.gemini import GeminiProvider
from app.ai.providers.openai import OpenAIProvider
from app.config import Settings


def build_provider(settings: Settings) -> Provider:
  """Return the configured text-generation provider."""
  if settings.ai_provider == "gemini":
    return GeminiProvider(settings.gemini_api_key)
  if settings.ai_provider == "openai":
    return OpenAIProvider(settings.openai_api_key)
  return ClaudeProvider(settings.anthropic_api_key)


def get_model_for_settings(settings: Settings) -> AIModel:
  """Resolve the model client used for listing and analysis generation."""
  return build_provider(settings).get_model(settings.ai_model)


__all__ = ["AIModel", "Provider", "SimpleModelResponse", "StructuredModelResponse", "ClaudeProvider", "GeminiProvider", "OpenAIProvider", "build_provider", "get_model_for_settings"]
