"""Shape collected market data for the analysis prompts."""

from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

from app.scraping.models import ProductDetails, Review, SearchResults

MAX_SEARCH_RESULTS = 20


def competitor_from_product(product: ProductDetails, *, marketplace_domain: str, source: str) -> dict[str, Any]:
  """Flatten a product lookup into the competitor entry stored on a collection result."""
  raw = product.model_dump(mode="json")
  return {
    "asin": product.asin,
    "title": product.title or product.product_name or "",
    "brand": product.brand or "",
    "price": product.price,
    "price_initial": raw.get("price_initial"),
    "currency": raw.get("currency") or "$",
    "rating": product.rating or 0,
    "reviews_count": product.reviews_count or 0,
    "bullet_points": product.bullet_points or "",
    "description": product.description or "",
    "product_overview": raw.get("product_overview") or [],
    "images": raw.get("images") or [],
    "is_prime_eligible": bool(raw.get("is_prime_eligible")),
    "amazon_choice": bool(raw.get("amazon_choice")),
    "deal_type": raw.get("deal_type"),
    "coupon": raw.get("coupon"),
    "sales_volume": raw.get("sales_volume"),
    "top_reviews": raw.get("reviews") or [],
    "marketplace_domain": marketplace_domain,
    "source": source,
  }


def failed_competitor(asin: str, error: str) -> dict[str, Any]:
  return {"asin": asin, "error": error, "source": "error"}


def search_entry(keyword: str, results: SearchResults) -> dict[str, Any]:
  return {
    "keyword": keyword,
    "total_results_count": results.total_results_count or 0,
    "organic_results": [item.model_dump(mode="json") for item in results.results.organic],
    "sponsored_results": [item.model_dump(mode="json") for item in results.results.paid],
    "amazons_choices": [item.model_dump(mode="json") for item in results.results.amazons_choices],
  }


@dataclass
class MarketStats:
  avg_price: float = 0.0
  min_price: float = 0.0
  max_price: float = 0.0
  median_price: float = 0.0
  avg_rating: float = 0.0
  total_reviews: int = 0
  prime_percentage: float = 0.0
  amazon_choice_count: int = 0
  currency: str = "$"

  @classmethod
  def from_competitors(cls, competitors: list[dict[str, Any]]) -> MarketStats:
    if not competitors:
      return cls()
    prices = [float(c["price"]) for c in competitors if c.get("price")]
    ratings = [float(c["rating"]) for c in competitors if c.get("rating")]
    return cls(
      avg_price=statistics.fmean(prices) if prices else 0.0,
      min_price=min(prices) if prices else 0.0,
      max_price=max(prices) if prices else 0.0,
      median_price=statistics.median(prices) if prices else 0.0,
      avg_rating=statistics.fmean(ratings) if ratings else 0.0,
      total_reviews=sum(int(c.get("reviews_count") or 0) for c in competitors),
      prime_percentage=sum(1 for c in competitors if c.get("is_prime_eligible")) / len(competitors) * 100,
      amazon_choice_count=sum(1 for c in competitors if c.get("amazon_choice")),
      currency=competitors[0].get("currency") or "$",
    )


@dataclass
class MarketData:
  """Everything the analysis phases read about one market."""

  keywords: list[str]
  marketplace: str
  competitors: list[dict[str, Any]]
  search_results: list[dict[str, Any]] = field(default_factory=list)
  reviews: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
  questions: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

  @property
  def keywords_label(self) -> str:
    return ", ".join(self.keywords)

  @property
  def stats(self) -> MarketStats:
    return MarketStats.from_competitors(self.competitors)

  def reviews_for(self, asin: str) -> list[dict[str, Any]]:
    """Fetched reviews, falling back to the top reviews from the product page."""
    fetched = self.reviews.get(asin)
    if fetched:
      return fetched
    for competitor in self.competitors:
      if competitor.get("asin") == asin:
        return list(competitor.get("top_reviews") or [])
    return []


def build_market_data(request: dict[str, Any], collected: dict[str, Any], selected_asins: list[str], reviews: dict[str, list[dict[str, Any]]], questions: dict[str, list[dict[str, Any]]]) -> MarketData:
  selected = set(selected_asins)
  competitors = [c for c in collected.get("competitors", []) if not c.get("error") and c.get("asin") in selected]
  organic: list[dict[str, Any]] = []
  for entry in collected.get("keyword_search", []):
    organic.extend(entry.get("organic_results") or [])
  return MarketData(
    keywords=list(request.get("keywords") or []),
    marketplace=str(request.get("amazon_domain") or ""),
    competitors=competitors,
    search_results=organic[:MAX_SEARCH_RESULTS],
    reviews={asin: items for asin, items in reviews.items() if asin in selected},
    questions={asin: items for asin, items in questions.items() if asin in selected},
  )


def review_dicts(reviews: list[Review]) -> list[dict[str, Any]]:
  return [review.model_dump(mode="json") for review in reviews]
