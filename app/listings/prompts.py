"""Prompt builders for each listing generation phase."""

from __future__ import annotations

from app.listings.marketplaces import Marketplace
from app.listings.models import GenerationJob, KeywordCoverage, Phase, bullet_section_types

_SYSTEM_PROMPT = "You are an expert Amazon listing copywriter who optimizes for the A9/A10 ranking algorithm. Only return valid JSON, no markdown fences or explanation."

_MAX_PLACED_LINES = 30
_MAX_LOW_PRIORITY_LINES = 20


def system_prompt() -> str:
  return _SYSTEM_PROMPT


def format_keyword_coverage(coverage: KeywordCoverage) -> str:
  """Render the coverage tracker block that steers keyword placement."""
  placed_lines = "\n".join(f'  - "{kw.keyword}" -> {kw.placed_in} [SV: {kw.search_volume}, rel: {kw.relevance}]' for kw in coverage.placed[:_MAX_PLACED_LINES])

  tiers = (("high", "HIGH PRIORITY (relevance >= 0.6)"), ("medium", "MEDIUM PRIORITY (relevance 0.4-0.6)"), ("low", "LOWER PRIORITY (relevance < 0.4)"))
  remaining_blocks = []
  for tier, heading in tiers:
    keywords = [kw for kw in coverage.remaining if kw.priority == tier]
    if tier == "low":
      keywords = keywords[:_MAX_LOW_PRIORITY_LINES]
    if keywords:
      lines = "\n".join(f'    - "{kw.keyword}" (SV: {kw.search_volume}, rel: {kw.relevance})' for kw in keywords)
      remaining_blocks.append(f"  {heading}:\n{lines}")

  remaining_text = "\n".join(remaining_blocks) or "  (all keywords placed)"
  return (
    "=== KEYWORD PLACEMENT TRACKER ===\n"
    f"Current coverage score: {coverage.coverage_score}/100\n\n"
    "Keywords already placed (do not repeat unless natural):\n"
    f"{placed_lines or '  (none yet, this is the first phase)'}\n\n"
    "Keywords still needing placement (prioritize these):\n"
    f"{remaining_text}\n"
  )


def _shared_context(job: GenerationJob, marketplace: Marketplace) -> str:
  product = job.product
  limits = marketplace.char_limits
  attributes = "\n".join(f"  {key}: {value}" for key, value in product.attributes.items()) or "  (none provided)"
  keyword_lines = "\n".join(f'  - "{kw.keyword}" (SV: {kw.search_volume}, rel: {kw.relevance})' for kw in sorted(job.keywords, key=lambda kw: -kw.relevance)) or "  (no keyword research provided)"
  return (
    "=== PRODUCT INFO ===\n"
    f"Product: {product.product_name}\n"
    f"Brand: {product.brand}\n"
    f"ASIN: {product.asin or 'Not provided'}\n"
    f"Category: {product.category or 'Not provided'}\n"
    f"Marketplace: {marketplace.name} ({marketplace.amazon_domain})\n"
    f"Language: ALL content MUST be written in {marketplace.language}\n"
    f"Attributes:\n{attributes}\n\n"
    "=== CHARACTER LIMITS (strict, do not exceed) ===\n"
    f"Title: {limits.title} characters max\n"
    f"Each Bullet Point: {limits.bullet} characters max ({limits.bullet_count} bullets)\n"
    f"Description: {limits.description} characters max\n"
    f"Search Terms: {limits.search_terms} characters max (backend only)\n\n"
    f"=== KEYWORD RESEARCH ===\n{keyword_lines}\n\n"
    f"=== CUSTOMER REVIEW INSIGHTS ===\n{product.review_insights or 'No review analysis available.'}\n\n"
    f"=== Q&A / CUSTOMER CONCERNS ===\n{product.qna_insights or 'No Q&A analysis available.'}\n"
  )


def _confirmed_block(job: GenerationJob, bullet_count: int) -> str:
  confirmed = job.confirmed_texts()
  lines = ["=== CONFIRMED CONTENT (already finalized) ==="]
  if "title" in confirmed:
    lines.append(f"Title: {confirmed['title']}")
  bullets = [confirmed[section_type] for section_type in bullet_section_types(bullet_count) if section_type in confirmed]
  if bullets:
    lines.append("Bullets:")
    lines.extend(f"  Bullet {index}: {text}" for index, text in enumerate(bullets, start=1))
  if "description" in confirmed:
    lines.append(f"Description: {confirmed['description']}")
  if "search_terms" in confirmed:
    lines.append(f"Search Terms: {confirmed['search_terms']}")
  return "\n".join(lines)


def _title_task(job: GenerationJob, marketplace: Marketplace) -> str:
  limits = marketplace.char_limits
  return (
    "=== YOUR TASK: GENERATE 5 TITLE VARIATIONS ===\n"
    "The title carries the most search weight. Put the highest relevance and highest volume keywords in the first 80 characters.\n"
    f'Every title MUST start with "{job.product.brand}" and stay under {limits.title} characters.\n'
    "Variations: 1. SEO-dense 2. Benefit-focused 3. Balanced 4. Feature-rich 5. Concise/clean.\n\n"
    '=== OUTPUT FORMAT ===\n{"titles": ["title 1", "title 2", "title 3", "title 4", "title 5"]}'
  )


def _bullets_task(marketplace: Marketplace) -> str:
  limits = marketplace.char_limits
  example = ", ".join(f'["bullet {index} SEO", "bullet {index} benefit", "bullet {index} balanced"]' for index in range(1, 3))
  return (
    f"=== YOUR TASK: GENERATE {limits.bullet_count} BULLET POINTS, 3 VARIATIONS EACH ===\n"
    "Place the remaining high priority keywords first. Lead each bullet with a short capitalized hook.\n"
    f"Each bullet variation must stay under {limits.bullet} characters.\n"
    "Variations per bullet: SEO-focused, benefit-focused, balanced.\n\n"
    f'=== OUTPUT FORMAT ===\n{{"bullets": [{example}, ...]}} with exactly {limits.bullet_count} inner lists.'
  )


def _description_task(marketplace: Marketplace) -> str:
  limits = marketplace.char_limits
  return (
    "=== YOUR TASK: 3 DESCRIPTION VARIATIONS + 3 SEARCH TERM VARIATIONS ===\n"
    f"Description: weave the remaining medium relevance keywords into readable paragraphs, {limits.description} characters max.\n"
    f"Search terms: the final sweep. Space separated, no brand names, no ASINs, no commas, {limits.search_terms} characters max.\n\n"
    '=== OUTPUT FORMAT ===\n{"descriptions": ["SEO", "benefit", "balanced"], "search_terms": ["variation 1", "variation 2", "variation 3"]}'
  )


def _backend_task() -> str:
  return (
    "=== YOUR TASK: SUBJECT MATTER + BACKEND ATTRIBUTES ===\n"
    "Subject matter: 3 short descriptive fields, each under 50 characters, with 3 variations of each field.\n"
    "Backend attributes: data-driven values for material, target_audience, special_features, recommended_uses, included_components and any other relevant fields, up to 5 values each in priority order.\n\n"
    "=== OUTPUT FORMAT ===\n"
    '{"subject_matter": [["field 1 var 1", "field 1 var 2", "field 1 var 3"], ["field 2 var 1", "..."], ["field 3 var 1", "..."]], '
    '"backend_attributes": {"material": ["value"], "target_audience": ["value"]}}'
  )


def build_phase_prompt(job: GenerationJob, phase: Phase, marketplace: Marketplace) -> str:
  """Assemble the user prompt for a generation phase."""
  parts = [_shared_context(job, marketplace)]
  if phase != "title":
    parts.append(_confirmed_block(job, marketplace.char_limits.bullet_count))
  parts.append(format_keyword_coverage(job.keyword_coverage))

  if phase == "title":
    parts.append(_title_task(job, marketplace))
  elif phase == "bullets":
    parts.append(_bullets_task(marketplace))
  elif phase == "description":
    parts.append(_description_task(marketplace))
  elif phase == "backend":
    parts.append(_backend_task())
  else:
    raise ValueError(f"No prompt for phase '{phase}'.")

  parts.append(f"ALL content in {marketplace.language}. Only return valid JSON.")
  return "\n\n".join(parts)
