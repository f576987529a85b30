from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator

from app.jobs.models import JobKind, JobStatus
from app.listings.models import ListingStatus, PriorityTier

MAX_KEYWORDS = 200
MAX_MARKET_KEYWORDS = 5


# ASIN lookup


class AsinLookupRequest(BaseModel):
  """Batch lookup of product details for up to ten ASINs."""

  asins: list[StrictStr] = Field(description="ASINs to look up; trimmed and upper-cased before validation.", examples=[["B0CHX1W1XY", "B09G9FPHY6"]])
  country: StrictStr = Field(default="US", description="Marketplace code.", examples=["US", "UK", "DE"])
  model_config = ConfigDict(extra="forbid")


class AsinLookupItem(BaseModel):
  asin: StrictStr
  success: bool
  data: dict[str, Any] | None = None
  error: StrictStr | None = None
  saved_id: StrictStr | None = None


class BatchLookupResponse(BaseModel):
  """Per-ASIN outcomes plus aggregate counts."""

  results: list[AsinLookupItem]
  succeeded: int
  failed: int
  message: StrictStr


class SavedLookupResponse(BaseModel):
  lookup_id: StrictStr | None
  asin: StrictStr
  marketplace: StrictStr
  title: StrictStr | None = None
  brand: StrictStr | None = None
  price: float | None = None
  rating: float | None = None
  reviews_count: int | None = None
  updated_at: StrictStr | None = None


class SavedLookupListResponse(BaseModel):
  data: list[SavedLookupResponse]


# Listings


class KeywordInput(BaseModel):
  keyword: StrictStr = Field(min_length=1)
  relevance: float = Field(ge=0.0, le=1.0, description="Relevance from keyword research, 0 to 1.")
  search_volume: int = Field(default=0, ge=0)
  model_config = ConfigDict(extra="forbid")


class ProductInput(BaseModel):
  """Product facts and research keywords used to start a listing."""

  product_name: StrictStr = Field(min_length=1)
  brand: StrictStr = Field(min_length=1)
  asin: StrictStr | None = None
  category: StrictStr | None = None
  marketplace: StrictStr = Field(default="US", description="Marketplace code.")
  attributes: dict[StrictStr, StrictStr] = Field(default_factory=dict)
  review_insights: StrictStr | None = None
  qna_insights: StrictStr | None = None
  keywords: list[KeywordInput] = Field(default_factory=list, max_length=MAX_KEYWORDS)
  model_config = ConfigDict(extra="forbid")


class GeneratePhaseRequest(BaseModel):
  """Generate the next phase; confirmed carries final texts for the phase being left."""

  phase: Literal["title", "bullets", "description", "backend"]
  listing_id: StrictStr | None = None
  product: ProductInput | None = None
  confirmed: dict[StrictStr, StrictStr] | None = Field(default=None, description="Final text per section type of the current phase, e.g. {\"title\": \"...\"}.")
  model_config = ConfigDict(extra="forbid")


class ConfirmPhaseRequest(BaseModel):
  final_texts: dict[StrictStr, StrictStr] = Field(default_factory=dict)
  model_config = ConfigDict(extra="forbid")


class SectionPatch(BaseModel):
  final_text: StrictStr | None = None
  selected_variation: StrictInt | None = Field(default=None, ge=0)
  model_config = ConfigDict(extra="forbid")


class ListingPatchRequest(BaseModel):
  """Merge-patch: omitted fields are left unchanged, an explicit null clears notes or final_text."""

  status: ListingStatus | None = None
  notes: StrictStr | None = None
  sections: dict[StrictStr, SectionPatch] | None = None
  model_config = ConfigDict(extra="forbid")


class SectionResponse(BaseModel):
  section_type: StrictStr
  label: StrictStr
  variations: list[StrictStr]
  selected_variation: int
  final_text: StrictStr | None = None
  is_approved: bool
  char_limit: int


class PlacedKeywordResponse(BaseModel):
  keyword: StrictStr
  relevance: float
  placed_in: StrictStr
  search_volume: int = 0


class RemainingKeywordResponse(BaseModel):
  keyword: StrictStr
  relevance: float
  priority: PriorityTier
  search_volume: int = 0


class KeywordCoverageResponse(BaseModel):
  placed: list[PlacedKeywordResponse]
  remaining: list[RemainingKeywordResponse]
  coverage_score: int


class ListingResponse(BaseModel):
  """A listing with its generated sections and keyword coverage."""

  listing_id: StrictStr
  phase: StrictStr
  status: ListingStatus
  marketplace: StrictStr
  product: dict[str, Any]
  sections: list[SectionResponse]
  keyword_coverage: KeywordCoverageResponse
  model_used: StrictStr | None = None
  tokens_used: int = 0
  generation_error: StrictStr | None = None
  notes: StrictStr | None = None
  backend_attributes: dict[str, list[str]] = Field(default_factory=dict)
  created_at: StrictStr
  updated_at: StrictStr


class ListingSummaryResponse(BaseModel):
  listing_id: StrictStr
  product_name: StrictStr
  brand: StrictStr
  marketplace: StrictStr
  phase: StrictStr
  status: ListingStatus
  coverage_score: int
  updated_at: StrictStr


class ListingListResponse(BaseModel):
  data: list[ListingSummaryResponse]


# Background jobs


class JobProgressResponse(BaseModel):
  step: StrictStr
  current: int = 0
  total: int = 0
  message: StrictStr = ""


class JobStatusResponse(BaseModel):
  """Status payload for a background job."""

  job_id: StrictStr
  job_kind: JobKind
  status: JobStatus
  progress: JobProgressResponse | None = None
  request: dict[str, Any] = Field(default_factory=dict)
  result: dict[str, Any] | None = None
  error_message: StrictStr | None = None
  created_at: StrictStr
  updated_at: StrictStr
  completed_at: StrictStr | None = None


class JobListResponse(BaseModel):
  data: list[JobStatusResponse]


class ReviewsRequest(BaseModel):
  """Start a background reviews fetch for one ASIN."""

  asin: StrictStr
  country: StrictStr = "US"
  max_reviews: StrictInt = Field(default=100, ge=0, le=5000, description="Reviews to fetch; 0 fetches as many as the provider allows.")
  sort_by: Literal["recent", "helpful"] = "recent"
  model_config = ConfigDict(extra="forbid")


class MarketIntelligenceRequest(BaseModel):
  """Create a market-intelligence run for up to five keywords."""

  keywords: list[StrictStr] = Field(min_length=1, max_length=MAX_MARKET_KEYWORDS)
  country: StrictStr = "US"
  max_competitors: StrictInt | None = Field(default=None, description="Clamped to 5..20; defaults to 10.")
  reviews_per_product: StrictInt = Field(default=100, ge=0, le=500)
  model_config = ConfigDict(extra="forbid")

  @field_validator("keywords")
  @classmethod
  def _normalize_keywords(cls, value: list[str]) -> list[str]:
    keywords = list(dict.fromkeys(keyword.strip().lower() for keyword in value if keyword.strip()))
    if not keywords:
      raise ValueError("At least one non-empty keyword is required.")
    return keywords


class MarketSelectionRequest(BaseModel):
  selected_asins: list[StrictStr] = Field(min_length=1)
  model_config = ConfigDict(extra="forbid")


class DeleteResponse(BaseModel):
  deleted: bool
