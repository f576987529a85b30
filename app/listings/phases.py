"""Phase transitions for listing generation.

The functions here are pure: each takes a GenerationJob and returns an updated
copy, or raises without touching the input. The listing service is the only
caller that persists the results.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace

from app.listings.models import PHASE_ORDER, GenerationJob, KeywordCoverage, Phase, Section, bullet_section_types, canonical_section_order, section_label

NEXT_PHASE: dict[Phase, Phase] = {current: following for current, following in zip(PHASE_ORDER, PHASE_ORDER[1:], strict=False)}


class PhaseValidationError(ValueError):
  """Raised when a phase cannot be confirmed because a section has no final text."""

  def __init__(self, phase: Phase, section_type: str) -> None:
    self.phase = phase
    self.section_type = section_type
    self.section_label = section_label(section_type)
    super().__init__(f"{self.section_label} needs final text before the {phase} phase can be confirmed.")


class PhaseTransitionError(ValueError):
  """Raised when a phase is requested out of order or after completion."""


def next_phase(phase: Phase) -> Phase:
  """Return the phase that follows, failing for the terminal phase."""
  if phase == "complete":
    raise PhaseTransitionError("Listing generation is complete. Reset the listing to start over.")
  return NEXT_PHASE[phase]


def phase_section_types(phase: Phase, bullet_count: int) -> list[str]:
  """Section types a phase generates and owns."""
  if phase == "title":
    return ["title"]
  if phase == "bullets":
    return bullet_section_types(bullet_count)
  if phase == "description":
    return ["description", "search_terms"]
  if phase == "backend":
    return ["subject_matter"]
  return []


def section_phase(section_type: str) -> Phase:
  """Return the phase that owns a section type."""
  if section_type == "title":
    return "title"
  if section_type.startswith("bullet_"):
    return "bullets"
  if section_type in {"description", "search_terms"}:
    return "description"
  return "backend"


def _phase_index(phase: Phase) -> int:
  return PHASE_ORDER.index(phase)


def ensure_can_generate(job: GenerationJob, phase: Phase) -> None:
  """Only the phase directly after the current one may be generated."""
  expected = next_phase(job.phase)
  if phase != expected:
    raise PhaseTransitionError(f"Cannot generate the {phase} phase while the listing is at {job.phase}; the next phase is {expected}.")
  if phase == "complete":
    raise PhaseTransitionError("The complete phase has no content to generate; confirm the backend phase instead.")


def confirm_phase(job: GenerationJob, final_texts: Mapping[str, str] | None, *, bullet_count: int) -> GenerationJob:
  """
  Apply final texts to the current phase's sections and mark them approved.

  Every section of the current phase must end up with non-empty final text;
  otherwise PhaseValidationError names the first missing section in listing order
  and the job is returned untouched. The phase itself does not change here.
  """
  final_texts = final_texts or {}
  required = phase_section_types(job.phase, bullet_count)

  resolved: dict[str, str] = {}
  for section_type in required:
    section = job.section(section_type)
    candidate = final_texts.get(section_type)
    if candidate is None and section is not None:
      candidate = section.final_text
    if section is None or not candidate or not candidate.strip():
      raise PhaseValidationError(job.phase, section_type)
    resolved[section_type] = candidate.strip()

  sections = [replace(section, final_text=resolved[section.section_type], is_approved=True) if section.section_type in resolved else section for section in job.sections]
  return replace(job, sections=sections)


def apply_generated_phase(job: GenerationJob, phase: Phase, generated: Sequence[Section], *, coverage: KeywordCoverage, model_used: str, tokens_used: int) -> GenerationJob:
  """Store a phase's new variations as unapproved sections and advance to it."""
  ensure_can_generate(job, phase)

  # Drop anything at or after the generated phase so stale downstream drafts cannot survive.
  kept = [section for section in job.sections if _phase_index(section_phase(section.section_type)) < _phase_index(phase)]
  fresh = [replace(section, final_text=None, is_approved=False, selected_variation=0) for section in generated]
  order = {section_type: index for index, section_type in enumerate(canonical_section_order())}
  sections = sorted([*kept, *fresh], key=lambda section: order.get(section.section_type, len(order)))
  return replace(job, phase=phase, sections=sections, keyword_coverage=coverage, model_used=model_used, tokens_used=job.tokens_used + tokens_used, generation_error=None)


def complete_listing(job: GenerationJob) -> GenerationJob:
  """Move a confirmed backend phase to complete."""
  if job.phase != "backend":
    raise PhaseTransitionError(f"Only the backend phase can complete a listing; the listing is at {job.phase}.")
  return replace(job, phase="complete", generation_error=None, status="review")


def record_generation_error(job: GenerationJob, message: str) -> GenerationJob:
  """Keep the current phase and surface the failure for a retry."""
  return replace(job, generation_error=message)


def reset_job(job: GenerationJob) -> GenerationJob:
  """Discard generated content and restart from pending."""
  return replace(job, phase="pending", sections=[], keyword_coverage=KeywordCoverage(), generation_error=None, status="draft")
