"""Keyword coverage tracking for listing text."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence

from app.listings.models import KeywordCoverage, KeywordTarget, PlacedKeyword, PriorityTier, RemainingKeyword, canonical_section_order

HIGH_PRIORITY_THRESHOLD = 0.6
MEDIUM_PRIORITY_THRESHOLD = 0.4


def priority_tier(relevance: float) -> PriorityTier:
  """Bucket a relevance score: >= 0.6 high, >= 0.4 medium, otherwise low."""
  if relevance >= HIGH_PRIORITY_THRESHOLD:
    return "high"
  if relevance >= MEDIUM_PRIORITY_THRESHOLD:
    return "medium"
  return "low"


def _round_half_up(value: float) -> int:
  return int(math.floor(value + 0.5))


def _dedupe(keywords: Iterable[KeywordTarget]) -> list[KeywordTarget]:
  seen: set[str] = set()
  unique: list[KeywordTarget] = []
  for target in keywords:
    normalized = target.keyword.strip().lower()
    if not normalized or normalized in seen:
      continue
    seen.add(normalized)
    unique.append(target)
  return unique


def compute_keyword_coverage(keywords: Iterable[KeywordTarget], confirmed: Mapping[str, str], drafted: Mapping[str, Sequence[str]] | None = None) -> KeywordCoverage:
  """
  Classify keywords as placed or remaining.

  A keyword is placed when it appears (case-insensitive substring) in any confirmed
  or drafted text. placed_in is the first section in canonical listing order that
  contains it. Keywords are deduplicated case-insensitively, keeping the first.
  """
  drafted = drafted or {}
  # Lower-case each section's text once; canonical order decides placed_in.
  ordered_types = [section_type for section_type in canonical_section_order() if section_type in confirmed or section_type in drafted]
  extra_types = sorted((set(confirmed) | set(drafted)) - set(ordered_types))
  section_texts: list[tuple[str, list[str]]] = []
  for section_type in [*ordered_types, *extra_types]:
    texts = []
    if confirmed.get(section_type):
      texts.append(confirmed[section_type].lower())
    texts.extend(text.lower() for text in drafted.get(section_type, ()) if text)
    section_texts.append((section_type, texts))

  targets = _dedupe(keywords)
  placed: list[PlacedKeyword] = []
  remaining: list[RemainingKeyword] = []
  for target in targets:
    needle = target.keyword.strip().lower()
    placed_in = next((section_type for section_type, texts in section_texts if any(needle in text for text in texts)), None)
    if placed_in is not None:
      placed.append(PlacedKeyword(keyword=target.keyword, relevance=target.relevance, placed_in=placed_in, search_volume=target.search_volume))
    else:
      remaining.append(RemainingKeyword(keyword=target.keyword, relevance=target.relevance, priority=priority_tier(target.relevance), search_volume=target.search_volume))

  # Highest relevance first; sorted() is stable so ties keep input order.
  remaining.sort(key=lambda kw: -kw.relevance)
  score = _round_half_up(len(placed) / len(targets) * 100) if targets else 0
  return KeywordCoverage(placed=tuple(placed), remaining=tuple(remaining), coverage_score=score)
