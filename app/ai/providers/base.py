"""Base interfaces for AI providers and models."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from app.ai.errors import AIProviderError
from app.ai.json_parser import parse_json_with_fallback


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None

  @property
  def total_tokens(self) -> int:
    if not self.usage:
      return 0
    return int(self.usage.get("total_tokens") or (self.usage.get("prompt_tokens", 0) + self.usage.get("completion_tokens", 0)))


@dataclass
class StructuredModelResponse:
  """Structured model response structure."""

  content: dict[str, Any]
  usage: dict[str, int] | None = None

  @property
  def total_tokens(self) -> int:
    if not self.usage:
      return 0
    return int(self.usage.get("total_tokens") or (self.usage.get("prompt_tokens", 0) + self.usage.get("completion_tokens", 0)))


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  provider_name: str = "ai"

  @abstractmethod
  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    """Generate a text response for the given prompt."""

  async def generate_json(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> StructuredModelResponse:
    """Generate a response and parse it as a JSON object."""
    response = await self.generate(prompt, system=system, max_tokens=max_tokens)
    try:
      parsed = parse_json_with_fallback(response.content)
    except json.JSONDecodeError as exc:
      raise AIProviderError(self.provider_name, f"{self.name} returned invalid JSON: {exc}") from exc

    if not isinstance(parsed, dict):
      raise AIProviderError(self.provider_name, f"{self.name} returned JSON {type(parsed).__name__}, expected an object.")

    return StructuredModelResponse(content=parsed, usage=response.usage)


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
