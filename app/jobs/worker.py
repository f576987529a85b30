"""Background processors for reviews fetches and market-intelligence runs."""

from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from app.ai.providers import get_model_for_settings
from app.ai.providers.base import AIModel
from app.config import Settings
from app.intelligence.analyzer import ANALYSIS_PHASES, MarketAnalyzer
from app.intelligence.data import build_market_data, competitor_from_product, failed_competitor, review_dicts, search_entry
from app.jobs.events import JobEventHub
from app.jobs.models import JobProgress, JobRecord
from app.jobs.progress import JobMissingError, JobProgressTracker
from app.scraping.apify import ApifyClient
from app.scraping.models import ProductDetails, Review
from app.scraping.oxylabs import OxylabsClient
from app.storage.jobs_repo import JobsRepository
from app.storage.lookups_repo import AsinLookupRecord, AsinLookupsRepository

# Apify actor runs take minutes for large review counts.
APIFY_REVIEW_TIMEOUT_SECONDS = 420.0
MAX_OXYLABS_REVIEW_PAGES = 20

T = TypeVar("T")


def review_pages(max_reviews: int) -> int:
  """Oxylabs returns about ten reviews per page; zero means as many as allowed."""
  if max_reviews <= 0:
    return MAX_OXYLABS_REVIEW_PAGES
  return max(1, min(math.ceil(max_reviews / 10), MAX_OXYLABS_REVIEW_PAGES))


def rating_summary(reviews: list[Review]) -> tuple[float | None, list[dict[str, Any]] | None]:
  """Average rating (one decimal) and the share of each star count, from the fetched reviews."""
  rated = [round(review.rating) for review in reviews if 1 <= review.rating <= 5]
  if not rated:
    return None, None
  counts = Counter(rated)
  overall = round(sum(rated) / len(rated), 1)
  distribution = [{"rating": star, "percentage": round(counts.get(star, 0) / len(rated) * 100)} for star in (5, 4, 3, 2, 1)]
  return overall, distribution


class JobProcessor:
  """Runs background jobs; each job is written only through its progress tracker."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    lookups_repo: AsinLookupsRepository,
    settings: Settings,
    oxylabs: OxylabsClient | None = None,
    apify: ApifyClient | None = None,
    model: AIModel | None = None,
    events: JobEventHub | None = None,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._lookups_repo = lookups_repo
    self._settings = settings
    self._oxylabs = oxylabs or OxylabsClient(settings.oxylabs_username, settings.oxylabs_password, timeout_seconds=settings.scrape_timeout_seconds)
    self._apify = apify or ApifyClient(settings.apify_api_token, timeout_seconds=settings.scrape_timeout_seconds)
    self._model = model
    self._events = events
    self._logger = logging.getLogger(__name__)

  def _tracker(self, job: JobRecord) -> JobProgressTracker:
    return JobProgressTracker.for_record(job, self._jobs_repo, events=self._events)

  async def _pause(self) -> None:
    if self._settings.scrape_delay_seconds > 0:
      await asyncio.sleep(self._settings.scrape_delay_seconds)

  async def _with_timeout(self, call: Callable[[], Awaitable[T]], timeout_seconds: float | None = None) -> T:
    async with asyncio.timeout(timeout_seconds or self._settings.scrape_timeout_seconds):
      return await call()

  async def _fail(self, tracker: JobProgressTracker, job_id: str, exc: Exception) -> JobRecord | None:
    message = str(exc) or type(exc).__name__
    self._logger.error("Job %s failed: %s", job_id, message, exc_info=True)
    try:
      return await tracker.fail(message)
    except JobMissingError:
      self._logger.warning("Job %s was deleted before its failure could be recorded.", job_id)
      return None

  async def process_job(self, job: JobRecord) -> JobRecord | None:
    """Route a job to its handler based on kind and status."""
    if job.job_kind == "reviews":
      return await self.fetch_reviews(job)
    if job.status == "analyzing":
      return await self.analyze_market(job)
    return await self.collect_market(job)

  # Reviews

  async def _reviews_for_asin(self, asin: str, request: dict[str, Any], tracker: JobProgressTracker, *, step: str, current: int, total: int) -> tuple[list[Review], dict[str, Any]]:
    """Apify first, Oxylabs as the fallback when Apify fails or returns nothing."""
    max_reviews = int(request.get("max_reviews") or 0)
    sort_by = str(request.get("sort_by") or "recent")
    amazon_domain = str(request["amazon_domain"])
    label = f"{current + 1}/{total}"

    if self._apify.configured:
      await tracker.report(step, current, total, f"Fetching reviews for {asin} via Apify ({label})... This may take a few minutes per product.")
      try:
        apify_result = await self._with_timeout(lambda: self._apify.fetch_reviews(asin, amazon_domain, max_reviews=max_reviews, sort_by=sort_by), APIFY_REVIEW_TIMEOUT_SECONDS)
        if apify_result.reviews:
          meta = {
            "provider": "apify",
            "run_id": apify_result.run_id,
            "dataset_id": apify_result.dataset_id,
            "total_reviews": apify_result.total_reviews,
            "customers_say": apify_result.customers_say,
            "review_aspects": [aspect.model_dump() for aspect in apify_result.review_aspects] if apify_result.review_aspects else None,
          }
          return apify_result.reviews, meta
        self._logger.info("Apify returned no reviews for %s; trying Oxylabs.", asin)
      except Exception as exc:  # noqa: BLE001
        self._logger.warning("Apify failed for %s: %s", asin, exc)

    await tracker.report(step, current, total, f"Fetching reviews for {asin} via Oxylabs ({label})...")
    page = await self._with_timeout(lambda: self._oxylabs.fetch_reviews(asin, domain=str(request["scraper_domain"]), sort_by=sort_by, pages=review_pages(max_reviews)))
    reviews = page.reviews[:max_reviews] if max_reviews > 0 else page.reviews
    return reviews, {"provider": "oxylabs", "total_reviews": page.reviews_count, "rating": page.rating}

  async def fetch_reviews(self, job: JobRecord) -> JobRecord | None:
    """Fetch reviews for one ASIN: pending -> fetching -> completed or failed."""
    if job.status != "pending":
      self._logger.info("Skipping reviews job %s in status %s", job.job_id, job.status)
      return job

    tracker = self._tracker(job)
    asin = str(job.request["asin"])
    try:
      await tracker.set_status("fetching", progress=JobProgress(step="review_fetch", current=0, total=1, message=f"Fetching reviews for {asin}..."))
      reviews, meta = await self._reviews_for_asin(asin, job.request, tracker, step="review_fetch", current=0, total=1)
      overall, distribution = rating_summary(reviews)
      total_reviews = meta.get("total_reviews")
      result = {
        "asin": asin,
        "marketplace": job.request.get("marketplace"),
        "sort_by": job.request.get("sort_by"),
        "reviews": review_dicts(reviews),
        "total_reviews": total_reviews if total_reviews and total_reviews >= len(reviews) else len(reviews),
        "overall_rating": meta.get("rating") or overall,
        "rating_stars_distribution": distribution,
        "total_pages_fetched": max(1, math.ceil(len(reviews) / 10)),
        "provider": meta,
      }
      self._logger.info("Reviews job %s fetched %d reviews for %s via %s", job.job_id, len(reviews), asin, meta["provider"])
      return await tracker.complete(result, message=f"Fetched {len(reviews)} reviews.", progress=JobProgress(step="completed", current=1, total=1, message=f"Fetched {len(reviews)} reviews."))
    except JobMissingError:
      self._logger.warning("Reviews job %s was deleted while running.", job.job_id)
      return None
    except Exception as exc:  # noqa: BLE001
      return await self._fail(tracker, job.job_id, exc)

  # Market intelligence: collection

  async def _lookup_competitor(self, asin: str, request: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Return (competitor, used_provider); saved lookups inside the cache window are reused."""
    marketplace = str(request["marketplace"])
    amazon_domain = str(request["amazon_domain"])
    cached = await self._lookups_repo.get_recent(asin, marketplace, max_age_hours=self._settings.lookup_cache_hours)
    if cached is not None and cached.raw_data:
      product = ProductDetails.model_validate({**cached.raw_data, "asin": asin})
      return competitor_from_product(product, marketplace_domain=amazon_domain, source="cache"), False

    product = await self._with_timeout(lambda: self._oxylabs.lookup_asin(asin, domain=str(request["scraper_domain"])))
    record = AsinLookupRecord(
      asin=asin,
      marketplace=marketplace,
      user_id=request.get("user_id"),
      title=product.title,
      brand=product.brand,
      price=product.price,
      rating=product.rating,
      reviews_count=product.reviews_count,
      raw_data=product.model_dump(mode="json"),
    )
    try:
      await self._lookups_repo.upsert_lookup(record)
    except Exception as exc:  # noqa: BLE001
      self._logger.error("Failed to save lookup for %s: %s", asin, exc)
    return competitor_from_product(product, marketplace_domain=amazon_domain, source="fresh"), True

  async def collect_market(self, job: JobRecord) -> JobRecord | None:
    """Keyword search then product lookup; ends awaiting_selection or failed.

    The collect endpoint may already have moved the job to collecting.
    """
    if job.status not in {"pending", "collecting"}:
      self._logger.info("Skipping collection for job %s in status %s", job.job_id, job.status)
      return job

    tracker = self._tracker(job)
    request = job.request
    keywords: list[str] = list(request.get("keywords") or [])
    max_competitors = int(request.get("max_competitors") or 10)
    competitors: dict[str, dict[str, Any]] = {}
    keyword_search: list[dict[str, Any]] = []
    provider_calls = 0

    try:
      await tracker.set_status("collecting", progress=JobProgress(step="keyword_search", current=0, total=len(keywords), message="Starting keyword search..."))
      for keyword_index, keyword in enumerate(keywords):
        await tracker.report("keyword_search", keyword_index, len(keywords), f'Searching keyword "{keyword}" ({keyword_index + 1}/{len(keywords)})...')
        provider_calls += 1
        try:
          results = await self._with_timeout(lambda kw=keyword: self._oxylabs.search_keyword(kw, domain=str(request["scraper_domain"]), pages=1))
        except Exception as exc:  # noqa: BLE001
          self._logger.warning("Keyword search failed for job %s keyword=%s: %s", job.job_id, keyword, exc)
          continue
        keyword_search.append(search_entry(keyword, results))

        to_lookup = [asin for asin in results.ranked_asins() if asin not in competitors][:max_competitors]
        if to_lookup:
          await self._pause()
        for asin_index, asin in enumerate(to_lookup):
          prefix = f"[{keyword}] " if len(keywords) > 1 else ""
          await tracker.report("product_lookup", asin_index + 1, len(to_lookup), f"{prefix}Fetching product {asin} ({asin_index + 1}/{len(to_lookup)})...")
          used_provider = True
          try:
            competitors[asin], used_provider = await self._lookup_competitor(asin, request)
          except TimeoutError:
            competitors[asin] = failed_competitor(asin, f"Skipped: timed out after {self._settings.scrape_timeout_seconds:g}s")
          except Exception as exc:  # noqa: BLE001
            self._logger.warning("Product lookup failed for job %s asin=%s: %s", job.job_id, asin, exc)
            competitors[asin] = failed_competitor(asin, str(exc) or "Lookup failed")
          if used_provider:
            provider_calls += 1
            if asin_index < len(to_lookup) - 1:
              await self._pause()
        if keyword_index < len(keywords) - 1:
          await self._pause()

      if not competitors:
        await tracker.report("keyword_search", len(keywords), len(keywords), "No products found.")
        return await tracker.fail("No products found for any keyword")

      top_asins = list(competitors)
      collected = {"top_asins": top_asins, "competitors": list(competitors.values()), "keyword_search": keyword_search, "oxylabs_calls_used": provider_calls}
      message = f"Found {len(top_asins)} products. Select which to analyze."
      self._logger.info("Collection for job %s found %d products with %d provider calls", job.job_id, len(top_asins), provider_calls)
      return await tracker.save_result(collected, status="awaiting_selection", progress=JobProgress(step="awaiting_selection", message=message), message=message)
    except JobMissingError:
      self._logger.warning("Market job %s was deleted during collection.", job.job_id)
      return None
    except Exception as exc:  # noqa: BLE001
      return await self._fail(tracker, job.job_id, exc)

  # Market intelligence: analysis

  async def analyze_market(self, job: JobRecord) -> JobRecord | None:
    """Reviews and Q&A for the selected products, then the four analysis phases."""
    if job.status != "analyzing":
      self._logger.info("Skipping analysis for job %s in status %s", job.job_id, job.status)
      return job

    tracker = self._tracker(job)
    request = job.request
    collected = dict(job.result_json or {})
    selected: list[str] = list(request.get("selected_asins") or [])
    provider_calls = int(collected.get("oxylabs_calls_used") or 0)
    reviews_data: dict[str, list[dict[str, Any]]] = {}
    questions_data: dict[str, list[dict[str, Any]]] = {}

    try:
      for index, asin in enumerate(selected):
        try:
          reviews, meta = await self._reviews_for_asin(asin, request, tracker, step="review_fetch", current=index, total=len(selected))
          if meta["provider"] == "oxylabs":
            provider_calls += 1
          reviews_data[asin] = review_dicts(reviews)
        except Exception as exc:  # noqa: BLE001
          self._logger.warning("Review fetch failed for job %s asin=%s, using top reviews: %s", job.job_id, asin, exc)
        if index < len(selected) - 1:
          await self._pause()

      for index, asin in enumerate(selected):
        await tracker.report("qna_fetch", index, len(selected), f"Fetching Q&A for {asin} ({index + 1}/{len(selected)})...")
        provider_calls += 1
        try:
          page = await self._with_timeout(lambda a=asin: self._oxylabs.fetch_questions(a, domain=str(request["scraper_domain"])))
          questions_data[asin] = [question.model_dump(mode="json") for question in page.questions]
        except Exception as exc:  # noqa: BLE001
          self._logger.warning("Q&A fetch failed for job %s asin=%s: %s", job.job_id, asin, exc)
        if index < len(selected) - 1:
          await self._pause()

      data = build_market_data(request, collected, selected, reviews_data, questions_data)
      model = self._model or get_model_for_settings(self._settings)
      analyzer = MarketAnalyzer(model, timeout_seconds=self._settings.ai_timeout_seconds)

      async def _on_phase(step: str, completed: int, message: str) -> None:
        await tracker.report(step, completed, len(ANALYSIS_PHASES), message)

      outcome = await analyzer.analyze(data, on_phase=_on_phase)
      result = {
        **collected,
        "reviews_data": reviews_data,
        "questions_data": questions_data,
        "oxylabs_calls_used": provider_calls,
        "analysis_result": outcome.result,
        "model_used": outcome.model_used,
        "tokens_used": outcome.tokens_used,
      }
      total = len(ANALYSIS_PHASES)
      self._logger.info("Analysis for job %s complete; %d tokens used", job.job_id, outcome.tokens_used)
      return await tracker.complete(result, message="Analysis complete.", progress=JobProgress(step="completed", current=total, total=total, message="Analysis complete."))
    except JobMissingError:
      self._logger.warning("Market job %s was deleted during analysis.", job.job_id)
      return None
    except Exception as exc:  # noqa: BLE001
      return await self._fail(tracker, job.job_id, exc)
