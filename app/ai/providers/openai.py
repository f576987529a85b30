"""OpenAI provider implementation using the openai SDK."""

from __future__ import annotations

import logging
from typing import Final

import openai
from openai import AsyncOpenAI

from app.ai.backoff import retry_with_backoff
from app.ai.errors import AIProviderError
from app.ai.providers.base import AIModel, Provider, SimpleModelResponse

logger = logging.getLogger("app.ai.providers.openai")


class OpenAIModel(AIModel):
  """OpenAI chat completions client."""

  provider_name = "openai"

  def __init__(self, name: str, api_key: str) -> None:
    self.name: str = name
    self._client = AsyncOpenAI(api_key=api_key, timeout=None, max_retries=0)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    """Generate text response from OpenAI."""
    messages = []
    if system:
      messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    request: dict = {"model": self.name, "messages": messages}
    if max_tokens:
      request["max_completion_tokens"] = max_tokens

    try:
      response = await retry_with_backoff(self._client.chat.completions.create, **request)
    except openai.APIStatusError as exc:
      raise AIProviderError(self.provider_name, f"OpenAI API error ({exc.status_code}): {exc.message}", status_code=exc.status_code) from exc
    except openai.APIError as exc:
      raise AIProviderError(self.provider_name, f"OpenAI API error: {exc}") from exc

    content = response.choices[0].message.content or ""
    logger.debug("OpenAI response (%s chars)", len(content))
    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}
    return SimpleModelResponse(content=content, usage=usage)


class OpenAIProvider(Provider):
  """OpenAI provider."""

  _DEFAULT_MODEL: Final[str] = "gpt-4.1"

  def __init__(self, api_key: str | None) -> None:
    self.name: str = "openai"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenAI model client."""
    if not self._api_key:
      raise AIProviderError(self.name, "OPENAI_API_KEY not found. Set it as an environment variable.")
    return OpenAIModel(model or self._DEFAULT_MODEL, api_key=self._api_key)
