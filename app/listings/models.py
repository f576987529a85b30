"""Domain models for phased listing generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Phase = Literal["pending", "title", "bullets", "description", "backend", "complete"]
PriorityTier = Literal["high", "medium", "low"]
ListingStatus = Literal["draft", "review", "approved", "exported"]

PHASE_ORDER: tuple[Phase, ...] = ("pending", "title", "bullets", "description", "backend", "complete")
GENERATION_PHASES: tuple[Phase, ...] = ("title", "bullets", "description", "backend")

MAX_BULLET_COUNT = 10

_FIXED_LABELS = {"title": "Title", "description": "Description", "search_terms": "Search Terms", "subject_matter": "Subject Matter"}


def bullet_section_types(bullet_count: int) -> list[str]:
  return [f"bullet_{index}" for index in range(1, bullet_count + 1)]


def canonical_section_order(bullet_count: int = MAX_BULLET_COUNT) -> list[str]:
  """Return section types in listing order: title, bullets, description, search terms, subject matter."""
  return ["title", *bullet_section_types(bullet_count), "description", "search_terms", "subject_matter"]


def section_label(section_type: str) -> str:
  """Human label for a section type, e.g. bullet_3 -> Bullet 3."""
  if section_type.startswith("bullet_"):
    return f"Bullet {section_type.removeprefix('bullet_')}"
  return _FIXED_LABELS.get(section_type, section_type.replace("_", " ").title())


def is_section_type(section_type: str) -> bool:
  if section_type in _FIXED_LABELS:
    return True
  suffix = section_type.removeprefix("bullet_")
  return section_type.startswith("bullet_") and suffix.isdigit() and 1 <= int(suffix) <= MAX_BULLET_COUNT


@dataclass
class Section:
  """One content slot of a listing with its generated variations."""

  section_type: str
  variations: list[str] = field(default_factory=list)
  selected_variation: int = 0
  final_text: str | None = None
  is_approved: bool = False
  section_id: str | None = None

  def selected_text(self) -> str:
    """Return the final text, falling back to the selected variation."""
    if self.final_text:
      return self.final_text
    if 0 <= self.selected_variation < len(self.variations):
      return self.variations[self.selected_variation]
    return self.variations[0] if self.variations else ""

  def has_final_text(self) -> bool:
    return bool(self.final_text and self.final_text.strip())


@dataclass(frozen=True)
class KeywordTarget:
  """A research keyword the listing should cover."""

  keyword: str
  relevance: float
  search_volume: int = 0


@dataclass(frozen=True)
class PlacedKeyword:
  keyword: str
  relevance: float
  placed_in: str
  search_volume: int = 0


@dataclass(frozen=True)
class RemainingKeyword:
  keyword: str
  relevance: float
  priority: PriorityTier
  search_volume: int = 0


@dataclass(frozen=True)
class KeywordCoverage:
  """Snapshot of which keywords are placed in listing text and which remain."""

  placed: tuple[PlacedKeyword, ...] = ()
  remaining: tuple[RemainingKeyword, ...] = ()
  coverage_score: int = 0

  def to_dict(self) -> dict[str, Any]:
    return {
      "placed": [{"keyword": kw.keyword, "relevance": kw.relevance, "placed_in": kw.placed_in, "search_volume": kw.search_volume} for kw in self.placed],
      "remaining": [{"keyword": kw.keyword, "relevance": kw.relevance, "priority": kw.priority, "search_volume": kw.search_volume} for kw in self.remaining],
      "coverage_score": self.coverage_score,
    }

  @classmethod
  def from_dict(cls, data: dict[str, Any] | None) -> KeywordCoverage:
    if not data:
      return cls()
    placed = tuple(PlacedKeyword(keyword=item["keyword"], relevance=float(item["relevance"]), placed_in=item["placed_in"], search_volume=int(item.get("search_volume") or 0)) for item in data.get("placed", []))
    remaining = tuple(RemainingKeyword(keyword=item["keyword"], relevance=float(item["relevance"]), priority=item["priority"], search_volume=int(item.get("search_volume") or 0)) for item in data.get("remaining", []))
    return cls(placed=placed, remaining=remaining, coverage_score=int(data.get("coverage_score") or 0))


@dataclass(frozen=True)
class ProductDetails:
  """Product facts the copywriter works from."""

  product_name: str
  brand: str
  asin: str | None = None
  category: str | None = None
  attributes: dict[str, str] = field(default_factory=dict)
  review_insights: str | None = None
  qna_insights: str | None = None


@dataclass
class GenerationJob:
  """A listing in progress through the generation phases."""

  listing_id: str
  user_id: str | None
  phase: Phase
  product: ProductDetails
  marketplace: str
  keywords: list[KeywordTarget]
  created_at: str
  updated_at: str
  sections: list[Section] = field(default_factory=list)
  keyword_coverage: KeywordCoverage = field(default_factory=KeywordCoverage)
  status: ListingStatus = "draft"
  notes: str | None = None
  model_used: str | None = None
  tokens_used: int = 0
  generation_error: str | None = None
  backend_attributes: dict[str, list[str]] = field(default_factory=dict)

  def section(self, section_type: str) -> Section | None:
    for section in self.sections:
      if section.section_type == section_type:
        return section
    return None

  def confirmed_texts(self) -> dict[str, str]:
    """Final text of every section that has one."""
    return {section.section_type: section.final_text for section in self.sections if section.has_final_text() and section.final_text}

  def drafted_texts(self) -> dict[str, list[str]]:
    """Variations of sections that are not yet confirmed."""
    return {section.section_type: list(section.variations) for section in self.sections if not section.has_final_text()}
