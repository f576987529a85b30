"""Listing copy generation against the configured AI model."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.ai.errors import AIProviderError, GenerationTimeoutError
from app.ai.providers.base import AIModel
from app.listings.marketplaces import Marketplace
from app.listings.models import GenerationJob, Phase, Section, bullet_section_types
from app.listings.prompts import build_phase_prompt, system_prompt

logger = logging.getLogger("app.listings.writer")

_MAX_TOKENS: dict[Phase, int] = {"title": 16384, "bullets": 32768, "description": 16384, "backend": 16384}


class _TitleOutput(BaseModel):
  model_config = ConfigDict(extra="ignore")

  titles: list[str] = Field(min_length=1)


class _BulletsOutput(BaseModel):
  model_config = ConfigDict(extra="ignore")

  bullets: list[list[str]] = Field(min_length=1)


class _DescriptionOutput(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  descriptions: list[str] = Field(min_length=1)
  search_terms: list[str] = Field(min_length=1, alias="searchTerms")


class _BackendOutput(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  subject_matter: list[list[str]] = Field(min_length=1, alias="subjectMatter")
  backend_attributes: dict[str, list[str]] = Field(default_factory=dict, alias="backendAttributes")


@dataclass
class PhaseDraft:
  """Variations produced by one generation call."""

  phase: Phase
  sections: list[Section]
  model_used: str
  tokens_used: int
  backend_attributes: dict[str, list[str]] = field(default_factory=dict)


def _clean(values: list[str]) -> list[str]:
  return [value.strip() for value in values if value and value.strip()]


def _sections_from_output(phase: Phase, payload: dict, bullet_count: int) -> tuple[list[Section], dict[str, list[str]]]:
  """Validate the model's JSON and map it onto sections."""
  if phase == "title":
    parsed = _TitleOutput.model_validate(payload)
    return [Section(section_type="title", variations=_clean(parsed.titles))], {}

  if phase == "bullets":
    parsed_bullets = _BulletsOutput.model_validate(payload)
    if len(parsed_bullets.bullets) < bullet_count:
      raise AIProviderError("ai", f"Expected {bullet_count} bullets but the model returned {len(parsed_bullets.bullets)}.")
    return [Section(section_type=section_type, variations=_clean(variations)) for section_type, variations in zip(bullet_section_types(bullet_count), parsed_bullets.bullets, strict=False)], {}

  if phase == "description":
    parsed_description = _DescriptionOutput.model_validate(payload)
    return [Section(section_type="description", variations=_clean(parsed_description.descriptions)), Section(section_type="search_terms", variations=_clean(parsed_description.search_terms))], {}

  parsed_backend = _BackendOutput.model_validate(payload)
  # One variation per index across the subject matter fields, joined as a single value.
  width = max(len(field_variations) for field_variations in parsed_backend.subject_matter)
  variations = []
  for index in range(width):
    parts = [field_variations[index].strip() for field_variations in parsed_backend.subject_matter if index < len(field_variations) and field_variations[index].strip()]
    if parts:
      variations.append("; ".join(parts))
  return [Section(section_type="subject_matter", variations=variations)], parsed_backend.backend_attributes


class ListingWriter:
  """Generate listing copy one phase at a time."""

  def __init__(self, model: AIModel, *, timeout_seconds: float) -> None:
    self._model = model
    self._timeout_seconds = timeout_seconds

  async def generate_phase(self, job: GenerationJob, phase: Phase, marketplace: Marketplace) -> PhaseDraft:
    """Call the model for a phase and return validated variations."""
    prompt = build_phase_prompt(job, phase, marketplace)
    logger.info("Generating phase=%s listing_id=%s model=%s", phase, job.listing_id, self._model.name)
    try:
      async with asyncio.timeout(self._timeout_seconds):
        response = await self._model.generate_json(prompt, system=system_prompt(), max_tokens=_MAX_TOKENS.get(phase))
    except TimeoutError as exc:
      raise GenerationTimeoutError(self._model.provider_name, self._timeout_seconds) from exc

    try:
      sections, backend_attributes = _sections_from_output(phase, response.content, marketplace.char_limits.bullet_count)
    except ValidationError as exc:
      raise AIProviderError(self._model.provider_name, f"The model returned an unexpected {phase} payload: {exc.error_count()} validation errors.") from exc

    empty = [section.section_type for section in sections if not section.variations]
    if empty:
      raise AIProviderError(self._model.provider_name, f"The model returned no variations for {', '.join(empty)}.")

    return PhaseDraft(phase=phase, sections=sections, model_used=self._model.name, tokens_used=response.total_tokens, backend_attributes=backend_attributes)
