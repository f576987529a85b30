"""Prompt builders for the four market analysis phases."""

from __future__ import annotations

import json
from typing import Any

from app.intelligence.data import MarketData

REVIEW_EXCERPT_CHARS = 400
ANSWER_EXCERPT_CHARS = 300
DESCRIPTION_EXCERPT_CHARS = 1500

_JSON_ONLY = "Only return valid JSON, no markdown fences or explanation."


def _stars(rating: Any) -> str:
  try:
    value = max(0, min(5, round(float(rating))))
  except (TypeError, ValueError):
    value = 0
  return "★" * value + "☆" * (5 - value)


def _excerpt(text: str | None, limit: int) -> str:
  text = text or ""
  return text[:limit] + ("..." if len(text) > limit else "")


def _review_line(index: int, review: dict[str, Any]) -> str:
  verified = "Verified" if review.get("is_verified") else "Unverified"
  helpful = int(review.get("helpful_count") or 0)
  suffix = f", {helpful} helpful" if helpful > 0 else ""
  return f'  [{index}] {_stars(review.get("rating"))} "{review.get("title") or ""}" - {_excerpt(review.get("content"), REVIEW_EXCERPT_CHARS)} - {verified}{suffix}'


def _competitor_header(competitor: dict[str, Any]) -> str:
  title = (competitor.get("title") or "")[:80]
  return f'--- {competitor["asin"]} | {competitor.get("brand") or "Unknown"} - "{title}"'


def _competitor_block(index: int, competitor: dict[str, Any]) -> str:
  currency = competitor.get("currency") or "$"
  price = competitor.get("price")
  lines = [
    f"--- Competitor {index}: {competitor['asin']} ---",
    f"Title: {competitor.get('title') or ''}",
    f"Brand: {competitor.get('brand') or 'Unknown'} | Price: {currency}{price if price is not None else 'N/A'} | Rating: {competitor.get('rating') or 'N/A'}/5 | Reviews: {competitor.get('reviews_count') or 'N/A'}",
    f"Prime: {'Yes' if competitor.get('is_prime_eligible') else 'No'} | Amazon's Choice: {'Yes' if competitor.get('amazon_choice') else 'No'}",
    "",
    "Bullet Points:",
    competitor.get("bullet_points") or "  (none)",
    "",
    "Description:",
    _excerpt(competitor.get("description"), DESCRIPTION_EXCERPT_CHARS) or "  (none)",
  ]
  overview = competitor.get("product_overview") or []
  if overview:
    lines.extend(["", "Product Overview:"])
    lines.extend(f"    {item.get('title', '')}: {item.get('description', '')}" for item in overview if isinstance(item, dict))
  return "\n".join(lines)


def phase_1_reviews_prompt(data: MarketData) -> str:
  blocks: list[str] = []
  total = 0
  for competitor in data.competitors:
    reviews = data.reviews_for(competitor["asin"])
    if not reviews:
      continue
    total += len(reviews)
    header = f"{_competitor_header(competitor)} | {competitor.get('rating')}/5 | {competitor.get('reviews_count') or '?'} total reviews ---"
    blocks.append("\n".join([header, *(_review_line(i, review) for i, review in enumerate(reviews, start=1))]))

  return f"""You are an expert Amazon review analyst. Perform a deep-dive analysis of {total} reviews across {len(data.competitors)} competing products for "{data.keywords_label}" on {data.marketplace}.

=== REVIEWS BY PRODUCT ===
{chr(10).join(blocks) or "No reviews available."}

=== YOUR TASK: PHASE 1 - REVIEW DEEP-DIVE ===

Analyze every review provided. This data is the foundation for all later phases. Be precise with counts.

Return a JSON object with this exact structure:
{{
  "sentimentAnalysis": {{"positive": <% positive>, "painPoints": <% with complaints>, "featureRequests": <% requesting features>, "totalReviews": {total}, "averageRating": <weighted average>}},
  "topPositiveThemes": [8-12 items: {{"theme": "...", "mentions": <count>}}],
  "painPointsList": [8-12 items: {{"theme": "...", "mentions": <count>}}],
  "featureRequestsList": [5-10 items: {{"theme": "...", "mentions": <count>}}],
  "topPainPoints": [5-7 items: {{"title": "...", "description": "...", "impactPercentage": <% of negative reviews>}}],
  "primaryMotivations": [5-7 items: {{"title": "...", "description": "...", "frequencyDescription": "..."}}],
  "buyingDecisionFactors": [6-8 items: {{"rank": 1, "title": "...", "description": "..."}}],
  "perProductSummaries": [one per product: {{"asin": "...", "brand": "...", "title": "...", "positiveThemes": [], "negativeThemes": [], "uniqueSellingPoints": [], "commonComplaints": [], "reviewCount": <n>, "avgRating": <n>}}]
}}

Every number must be grounded in the review data.

{_JSON_ONLY}"""


def phase_2_qna_prompt(data: MarketData, phase_1: dict[str, Any]) -> str:
  summary = json.dumps({key: phase_1.get(key) for key in ("sentimentAnalysis", "topPainPoints", "primaryMotivations", "perProductSummaries")}, indent=2)
  blocks: list[str] = []
  total = 0
  for competitor in data.competitors:
    questions = data.questions.get(competitor["asin"]) or []
    if not questions:
      continue
    total += len(questions)
    lines = [f"{_competitor_header(competitor)} ---"]
    for index, item in enumerate(questions, start=1):
      votes = f" ({item['votes']} votes)" if item.get("votes") else ""
      lines.append(f"  [{index}] Q: {item.get('question', '')}\n       A: {_excerpt(item.get('answer') or 'No answer', ANSWER_EXCERPT_CHARS)}{votes}")
    blocks.append("\n".join(lines))

  if blocks:
    qna_section = f"=== Q&A DATA ({total} questions across {len(blocks)} products) ===\n" + "\n".join(blocks)
  else:
    qna_section = "=== Q&A DATA ===\nNo Q&A data available for these products."

  return f"""You are an expert Amazon market analyst. This is PHASE 2 of a 4-phase analysis for "{data.keywords_label}" on {data.marketplace}.

=== PHASE 1 REVIEW SUMMARY ===
{summary}

{qna_section}

=== YOUR TASK: PHASE 2 - Q&A ANALYSIS & CONTENT GAPS ===

Identify what customers ask before buying, their concerns, and the information gaps in competitor listings.

Return a JSON object with this exact structure:
{{
  "topQuestions": [10-15 items: {{"question": "...", "answer": "...", "votes": <count>, "category": "Product Specs/Usage/Compatibility/Quality/Safety", "asin": "..."}}],
  "questionThemes": [5-8 items: {{"theme": "...", "count": <n>, "description": "..."}}],
  "unansweredGaps": [5-8 items: {{"gap": "...", "importance": "CRITICAL/HIGH/MEDIUM", "recommendation": "..."}}],
  "buyerConcerns": [5-8 items: {{"concern": "...", "frequency": "Very Common/Common/Occasional", "resolution": "..."}}],
  "contentGaps": [5-8 items: {{"gap": "...", "importance": "CRITICAL/HIGH/MEDIUM", "recommendation": "..."}}]
}}

If no Q&A data is available, derive gaps and concerns from the Phase 1 review analysis.

{_JSON_ONLY}"""


def phase_3_market_prompt(data: MarketData, phase_1: dict[str, Any], phase_2: dict[str, Any]) -> str:
  stats = data.stats
  currency = stats.currency
  landscape = "\n".join(
    f"  #{item.get('pos') or 0} | {(item.get('title') or '')[:80]} | {item.get('asin', '')} | {currency}{item.get('price') if item.get('price') is not None else 'N/A'} | {item.get('rating') or 'N/A'} stars | {item.get('reviews_count') or '?'} reviews"
    for item in data.search_results
  )
  competitors = "\n\n".join(_competitor_block(index, competitor) for index, competitor in enumerate(data.competitors, start=1))

  return f"""You are an expert Amazon market intelligence analyst. This is PHASE 3 of a 4-phase analysis for "{data.keywords_label}" on {data.marketplace}.

=== PHASE 1 RESULTS - REVIEW DEEP-DIVE ===
{json.dumps(phase_1, indent=2)}

=== PHASE 2 RESULTS - Q&A ANALYSIS ===
{json.dumps(phase_2, indent=2)}

=== SEARCH LANDSCAPE (top organic results) ===
{landscape or "  (none)"}

=== COMPETITOR PRODUCT DATA ({len(data.competitors)} products) ===
{competitors}

=== MARKET STATS ===
Avg Price: {currency}{stats.avg_price:.2f} | Range: {currency}{stats.min_price:.2f}-{currency}{stats.max_price:.2f}
Avg Rating: {stats.avg_rating:.1f}/5 | Total Reviews: {stats.total_reviews} | Prime: {stats.prime_percentage:.0f}% | Amazon's Choice: {stats.amazon_choice_count}

=== YOUR TASK: PHASE 3 - MARKET & COMPETITIVE ANALYSIS ===

Return a JSON object with this exact structure:
{{
  "competitiveLandscape": [one per competitor: {{"brand": "...", "avgRating": <n>, "reviewCount": <n>, "category": "...", "keyFeatures": [], "marketShare": "<estimated %>"}}],
  "competitorPatterns": {{
    "titlePatterns": [top 5: {{"pattern": "...", "frequency": <n>, "example": "..."}}],
    "bulletThemes": [top 5: {{"theme": "...", "frequency": <n>, "example": "..."}}],
    "pricingRange": {{"min": <n>, "max": <n>, "average": <n>, "median": <n>, "currency": "{currency}"}}
  }},
  "customerSegments": [4-6 items: {{"name": "...", "ageRange": "...", "occupation": "...", "traits": []}}]
}}

{_JSON_ONLY}"""


def phase_4_strategy_prompt(data: MarketData, phase_1: dict[str, Any], phase_2: dict[str, Any], phase_3: dict[str, Any]) -> str:
  stats = data.stats
  return f"""You are an expert Amazon market intelligence strategist. This is PHASE 4 (final) of a 4-phase analysis for "{data.keywords_label}" on {data.marketplace}.

=== PHASE 1 - REVIEW DEEP-DIVE ===
{json.dumps(phase_1, indent=2)}

=== PHASE 2 - Q&A ANALYSIS ===
{json.dumps(phase_2, indent=2)}

=== PHASE 3 - MARKET & COMPETITIVE ===
{json.dumps(phase_3, indent=2)}

=== MARKET CONTEXT ===
Products analyzed: {len(data.competitors)} | Avg Price: {stats.currency}{stats.avg_price:.2f} | Avg Rating: {stats.avg_rating:.1f} | Total Reviews: {stats.total_reviews}

=== YOUR TASK: PHASE 4 - CUSTOMER INTELLIGENCE & STRATEGY ===

Synthesize all prior phases into actionable strategy. Every recommendation must reference data from earlier phases.

Return a JSON object with this exact structure:
{{
  "executiveSummary": "<3-5 sentences>",
  "customerDemographics": [6-8 items: {{"ageRange": "18-24", "male": <n>, "female": <n>}}],
  "detailedAvatars": [2-3 items: {{"name": "...", "initials": "..", "role": "Primary", "buyerPercentage": <n>, "demographics": {{}}, "psychographics": {{}}, "buyingBehavior": [], "keyMotivations": "..."}}],
  "imageRecommendations": ["8-10 recommendations"],
  "keyMarketInsights": {{"primaryTargetMarket": {{}}, "growthOpportunity": {{}}, "featurePriority": {{}}}},
  "strategicRecommendations": {{"pricing": [], "product": [], "marketing": [], "operations": []}},
  "messagingFramework": {{"primaryMessage": "...", "supportPoints": [], "proofPoints": [], "riskReversal": "..."}},
  "customerVoicePhrases": {{"positiveEmotional": [], "functional": [], "useCaseLanguage": []}}
}}

{_JSON_ONLY}"""
