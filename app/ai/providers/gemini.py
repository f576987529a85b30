"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
from typing import Any, Final

from google import genai
from google.genai import errors as genai_errors

from app.ai.backoff import retry_with_backoff
from app.ai.errors import AIProviderError
from app.ai.providers.base import AIModel, Provider, SimpleModelResponse

logger = logging.getLogger("app.ai.providers.gemini")


class GeminiModel(AIModel):
  """Gemini model client using google-genai SDK."""

  provider_name = "gemini"

  def __init__(self, name: str, api_key: str) -> None:
    self.name: str = name
    self._client = genai.Client(api_key=api_key)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    """Generate text response from Gemini."""
    config: dict[str, Any] = {}
    if system:
      config["system_instruction"] = system
    if max_tokens:
      config["max_output_tokens"] = max_tokens

    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config or None)
    except genai_errors.APIError as exc:
      raise AIProviderError(self.provider_name, f"Gemini API error ({exc.code}): {exc.message}", status_code=exc.code) from exc

    content = response.text or ""
    logger.debug("Gemini response (%s chars)", len(content))
    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count or 0, "completion_tokens": response.usage_metadata.candidates_token_count or 0, "total_tokens": response.usage_metadata.total_token_count or 0}
    return SimpleModelResponse(content=content, usage=usage)


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-pro"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.0-flash-lite"}

  def __init__(self, api_key: str | None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    if not self._api_key:
      raise AIProviderError(self.name, "GEMINI_API_KEY not found. Set it as an environment variable.")
    return GeminiModel(model_name, api_key=self._api_key)
