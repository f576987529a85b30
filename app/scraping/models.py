"""Validated shapes of scraping provider payloads.

Provider responses carry many optional and loosely typed fields. These models
keep the fields the application reads, coerce the common type drift (numbers as
strings, lists as strings) and keep everything else under ``extra``.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_REVIEW_URL_RE = re.compile(r"customer-reviews/([A-Z0-9]+)", re.IGNORECASE)
_TITLE_RATING_RE = re.compile(r"^(\d+(?:\.\d+)?)\s+out\s+of\s+\d+\s+stars?", re.IGNORECASE)
_ASPECT_COUNT_RE = re.compile(r"\(\d+\)\s*$")


def _first_number(value: Any) -> float | None:
  """Pull the first number out of values like '3.0', '1,204 ratings' or 12."""
  if value is None or isinstance(value, bool):
    return None
  if isinstance(value, int | float):
    return float(value)
  match = _NUMBER_RE.search(str(value))
  if not match:
    return None
  return float(match.group(0).replace(",", ""))


class _ProviderModel(BaseModel):
  model_config = ConfigDict(extra="allow", populate_by_name=True)


class ProductDetails(_ProviderModel):
  """amazon_product content."""

  asin: str
  title: str | None = None
  brand: str | None = Field(default=None, validation_alias=AliasChoices("brand", "manufacturer"))
  product_name: str | None = None
  description: str | None = None
  bullet_points: str | None = None
  price: float | None = None
  rating: float | None = None
  reviews_count: int | None = None
  url: str | None = None

  @field_validator("price", "rating", mode="before")
  @classmethod
  def _coerce_float(cls, value: Any) -> float | None:
    return _first_number(value)

  @field_validator("reviews_count", mode="before")
  @classmethod
  def _coerce_int(cls, value: Any) -> int | None:
    number = _first_number(value)
    return int(number) if number is not None else None


class SearchResultItem(_ProviderModel):
  asin: str
  title: str | None = None
  price: float | None = None
  rating: float | None = None
  reviews_count: int | None = None
  is_sponsored: bool = False
  url_image: str | None = None
  manufacturer: str | None = None
  sales_volume: str | None = None
  pos: int | None = None

  @field_validator("price", "rating", mode="before")
  @classmethod
  def _coerce_float(cls, value: Any) -> float | None:
    return _first_number(value)


class SearchResultGroups(_ProviderModel):
  paid: list[SearchResultItem] = Field(default_factory=list)
  organic: list[SearchResultItem] = Field(default_factory=list)
  suggested: list[SearchResultItem] = Field(default_factory=list)
  amazons_choices: list[SearchResultItem] = Field(default_factory=list)


class SearchResults(_ProviderModel):
  """amazon_search content."""

  query: str | None = None
  page: int = 1
  pages: int = 1
  total_results_count: int | None = None
  results: SearchResultGroups = Field(default_factory=SearchResultGroups)

  def ranked_asins(self) -> list[str]:
    """Organic results first, then paid, deduplicated in order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for item in [*self.results.organic, *self.results.paid]:
      if item.asin and item.asin not in seen:
        seen.add(item.asin)
        ordered.append(item.asin)
    return ordered


class Review(_ProviderModel):
  """One customer review, normalized across scraping providers."""

  id: str | None = None
  title: str = ""
  author: str = ""
  rating: float = 0
  content: str = ""
  timestamp: str = ""
  is_verified: bool = False
  helpful_count: int = 0
  product_attributes: str | None = None
  images: list[str] = Field(default_factory=list)

  @field_validator("rating", mode="before")
  @classmethod
  def _coerce_rating(cls, value: Any) -> float:
    return _first_number(value) or 0

  @field_validator("helpful_count", mode="before")
  @classmethod
  def _coerce_helpful(cls, value: Any) -> int:
    # "One person found this helpful" has no digits.
    if isinstance(value, str) and value.lower().startswith("one person"):
      return 1
    number = _first_number(value)
    return int(number) if number is not None else 0

  @field_validator("is_verified", mode="before")
  @classmethod
  def _coerce_verified(cls, value: Any) -> bool:
    if isinstance(value, str):
      return value.strip().lower() in {"true", "yes", "1", "verified purchase"}
    return bool(value)

  @field_validator("product_attributes", mode="before")
  @classmethod
  def _coerce_variant(cls, value: Any) -> str | None:
    if isinstance(value, list):
      return ", ".join(str(item) for item in value) or None
    return value


class ReviewsPage(_ProviderModel):
  """amazon_reviews content."""

  asin: str | None = None
  page: int = 1
  pages: int = 1
  reviews_count: int | None = None
  rating: float | None = None
  reviews: list[Review] = Field(default_factory=list)


class Question(_ProviderModel):
  question: str
  answer: str = ""
  votes: int = 0
  author: str | None = None
  date: str | None = None


class QuestionsPage(_ProviderModel):
  """amazon_questions content."""

  asin: str | None = None
  page: int = 1
  pages: int = 1
  questions: list[Question] = Field(default_factory=list)


class ApifyReviewItem(_ProviderModel):
  """Item from the Apify reviews actor dataset; field names follow the actor output."""

  asin: str = Field(default="", validation_alias="ASIN")
  page_url: str = Field(default="", validation_alias="PageUrl")
  review_id: str = Field(default="", validation_alias="ReviewId")
  review_date: str = Field(default="", validation_alias="ReviewDate")
  images: list[str] = Field(default_factory=list, validation_alias="Images")
  review_score: Any = Field(default=None, validation_alias="ReviewScore")
  total_reviews_text: str | None = Field(default=None, validation_alias="RatingTypeTotalReviews")
  reviewer: str = Field(default="", validation_alias="Reviewer")
  review_title: str = Field(default="", validation_alias="ReviewTitle")
  review_content: str = Field(default="", validation_alias="ReviewContent")
  verified: Any = Field(default=False, validation_alias="Verified")
  variant: Any = Field(default=None, validation_alias="Variant")
  helpful_counts: Any = Field(default=None, validation_alias="HelpfulCounts")
  customers_say: str | None = Field(default=None, validation_alias="CustomersSay")
  review_aspects: list[dict[str, Any]] | None = Field(default=None, validation_alias="ReviewAspects")

  @field_validator("images", mode="before")
  @classmethod
  def _coerce_images(cls, value: Any) -> list[str]:
    if not isinstance(value, list):
      return []
    return list(dict.fromkeys(str(item) for item in value))

  def resolved_review_id(self) -> str:
    if self.review_id:
      return self.review_id
    match = _REVIEW_URL_RE.search(self.page_url)
    if match:
      return match.group(1)
    digest = hashlib.sha1(f"{self.reviewer}-{self.review_title}-{self.review_date}".encode()).hexdigest()
    return f"apify-{digest[:12]}"

  def resolved_rating(self) -> int:
    score = _first_number(self.review_score)
    if score is not None and 1 <= score <= 5:
      return round(score)
    match = _TITLE_RATING_RE.match(self.review_title or "")
    return round(float(match.group(1))) if match else 0

  def to_review(self) -> Review:
    return Review(
      id=self.resolved_review_id(),
      title=self.review_title,
      author=self.reviewer,
      rating=self.resolved_rating(),
      content=self.review_content,
      timestamp=self.review_date,
      is_verified=self.verified,
      helpful_count=self.helpful_counts,
      product_attributes=self.variant,
      images=self.images,
    )


class ReviewAspect(BaseModel):
  aspect: str
  positive: int = 0
  negative: int = 0
  summary: str = ""

  @classmethod
  def from_actor(cls, raw: dict[str, Any]) -> ReviewAspect:
    """Actor aspects use aspect_name/positiv/negativ keys and append counts to the name."""
    name = str(raw.get("aspect_name") or raw.get("aspect") or "")
    return cls(
      aspect=_ASPECT_COUNT_RE.sub("", name).strip(),
      positive=int(_first_number(raw.get("positiv", raw.get("positive"))) or 0),
      negative=int(_first_number(raw.get("negativ", raw.get("negative"))) or 0),
      summary=str(raw.get("aspect-summary") or raw.get("summary") or ""),
    )
