"""Claude provider implementation using the Anthropic SDK."""

from __future__ import annotations

import logging
from typing import Final

import anthropic

from app.ai.backoff import retry_with_backoff
from app.ai.errors import AIProviderError
from app.ai.providers.base import AIModel, Provider, SimpleModelResponse

logger = logging.getLogger("app.ai.providers.claude")

_DEFAULT_MAX_TOKENS: Final[int] = 32768


class ClaudeModel(AIModel):
  """Claude messages client."""

  provider_name = "claude"

  def __init__(self, name: str, api_key: str) -> None:
    self.name: str = name
    # Timeouts are enforced by the caller so the SDK must not cut requests short.
    self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=None, max_retries=0)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    """Generate text response from Claude."""
    request: dict = {"model": self.name, "max_tokens": max_tokens or _DEFAULT_MAX_TOKENS, "messages": [{"role": "user", "content": prompt}]}
    if system:
      request["system"] = system

    try:
      response = await retry_with_backoff(self._client.messages.create, **request)
    except anthropic.APIStatusError as exc:
      raise AIProviderError(self.provider_name, f"Claude API error ({exc.status_code}): {exc.message}", status_code=exc.status_code) from exc
    except anthropic.APIError as exc:
      raise AIProviderError(self.provider_name, f"Claude API error: {exc}") from exc

    if response.stop_reason == "max_tokens":
      raise AIProviderError(self.provider_name, "Generation failed: the response was cut off by the token limit. Try reducing the product attributes or keyword list.")

    content = "".join(block.text for block in response.content if block.type == "text")
    logger.debug("Claude response (%s chars)", len(content))
    usage = {"prompt_tokens": response.usage.input_tokens, "completion_tokens": response.usage.output_tokens, "total_tokens": response.usage.input_tokens + response.usage.output_tokens}
    return SimpleModelResponse(content=content, usage=usage)


class ClaudeProvider(Provider):
  """Anthropic Claude provider."""

  _DEFAULT_MODEL: Final[str] = "claude-sonnet-4-6"

  def __init__(self, api_key: str | None) -> None:
    self.name: str = "claude"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Claude model client."""
    if not self._api_key:
      raise AIProviderError(self.name, "ANTHROPIC_API_KEY not found. Set it as an environment variable.")
    return ClaudeModel(model or self._DEFAULT_MODEL, api_key=self._api_key)
