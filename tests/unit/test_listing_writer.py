from __future__ import annotations

import asyncio

import pytest

from app.ai.errors import AIProviderError, GenerationTimeoutError
from app.ai.providers.base import AIModel, SimpleModelResponse
from app.intelligence.analyzer import MarketAnalyzer
from app.intelligence.data import MarketData
from app.listings.marketplaces import get_marketplace
from app.listings.models import GenerationJob, KeywordTarget, ProductDetails, Section
from app.listings.writer import ListingWriter


class SlowModel(AIModel):
  name = "slow-model"
  provider_name = "slow"

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    await asyncio.sleep(5)
    return SimpleModelResponse(content="{}")


def _job(sections: list[Section] | None = None) -> GenerationJob:
  return GenerationJob(
    listing_id="listing-1",
    user_id="user-1",
    phase="title",
    product=ProductDetails(product_name="Cork Yoga Mat", brand="Acme", attributes={"Material": "Cork"}),
    marketplace="DE",
    keywords=[KeywordTarget("yoga mat", 0.9, 12000), KeywordTarget("cork mat", 0.5, 800)],
    created_at="2025-01-01T00:00:00Z",
    updated_at="2025-01-01T00:00:00Z",
    sections=sections or [],
  )


@pytest.mark.anyio
async def test_title_phase_prompt_and_variations(scripted_model_cls) -> None:
  model = scripted_model_cls({"titles": ["Acme Cork Yoga Mat ", "", "Acme Yoga Mat Non Slip"]}, tokens=321)
  draft = await ListingWriter(model, timeout_seconds=5).generate_phase(_job(), "title", get_marketplace("DE"))

  assert draft.sections[0].section_type == "title"
  assert draft.sections[0].variations == ["Acme Cork Yoga Mat", "Acme Yoga Mat Non Slip"]
  assert draft.model_used == "scripted-model"
  assert draft.tokens_used == 321
  prompt = model.prompts[0]
  assert "ALL content MUST be written in German" in prompt
  assert 'Every title MUST start with "Acme"' in prompt
  assert "CONFIRMED CONTENT" not in prompt


@pytest.mark.anyio
async def test_bullets_phase_maps_inner_lists_to_bullet_sections(scripted_model_cls) -> None:
  model = scripted_model_cls({"bullets": [[f"Bullet {index} seo", f"Bullet {index} benefit"] for index in range(1, 6)]})
  job = _job([Section(section_type="title", variations=["Acme Cork Yoga Mat"], final_text="Acme Cork Yoga Mat")])
  draft = await ListingWriter(model, timeout_seconds=5).generate_phase(job, "bullets", get_marketplace("US"))

  assert [section.section_type for section in draft.sections] == ["bullet_1", "bullet_2", "bullet_3", "bullet_4", "bullet_5"]
  assert draft.sections[2].variations == ["Bullet 3 seo", "Bullet 3 benefit"]
  assert "Title: Acme Cork Yoga Mat" in model.prompts[0]


@pytest.mark.anyio
async def test_too_few_bullets_is_a_provider_error(scripted_model_cls) -> None:
  model = scripted_model_cls({"bullets": [["only one"]]})
  with pytest.raises(AIProviderError, match="Expected 5 bullets"):
    await ListingWriter(model, timeout_seconds=5).generate_phase(_job(), "bullets", get_marketplace("US"))


@pytest.mark.anyio
async def test_description_and_backend_phases(scripted_model_cls) -> None:
  model = scripted_model_cls(
    {"descriptions": ["Long form copy"], "searchTerms": ["cork mat eco yoga"]},
    {"subject_matter": [["Yoga", "Pilates"], ["Eco"], ["Home gym", " "]], "backend_attributes": {"material": ["cork", "rubber"]}},
  )
  writer = ListingWriter(model, timeout_seconds=5)
  description = await writer.generate_phase(_job(), "description", get_marketplace("US"))
  backend = await writer.generate_phase(_job(), "backend", get_marketplace("US"))

  assert [(section.section_type, section.variations) for section in description.sections] == [("description", ["Long form copy"]), ("search_terms", ["cork mat eco yoga"])]
  assert backend.sections[0].variations == ["Yoga; Eco; Home gym", "Pilates"]
  assert backend.backend_attributes == {"material": ["cork", "rubber"]}


@pytest.mark.anyio
async def test_unexpected_payload_and_empty_variations(scripted_model_cls) -> None:
  writer = ListingWriter(scripted_model_cls({"headline": "wrong"}, {"titles": ["  "]}), timeout_seconds=5)
  with pytest.raises(AIProviderError, match="unexpected title payload"):
    await writer.generate_phase(_job(), "title", get_marketplace("US"))
  with pytest.raises(AIProviderError, match="no variations for title"):
    await writer.generate_phase(_job(), "title", get_marketplace("US"))


@pytest.mark.anyio
async def test_generation_timeout() -> None:
  with pytest.raises(GenerationTimeoutError) as excinfo:
    await ListingWriter(SlowModel(), timeout_seconds=0.01).generate_phase(_job(), "title", get_marketplace("US"))
  assert excinfo.value.provider == "slow"
  assert str(excinfo.value) == "Generation timed out after 0.01 seconds. Please try again."


@pytest.mark.anyio
async def test_market_analyzer_feeds_earlier_phases_forward(scripted_model_cls) -> None:
  model = scripted_model_cls({"topPainPoints": [{"title": "slippery"}]}, {"topQuestions": []}, {"marketSummary": "crowded"}, {"strategy": "premium"}, tokens=10)
  data = MarketData(keywords=["yoga mat"], marketplace="amazon.com", competitors=[{"asin": "B000000001", "title": "Mat", "price": 20.0, "rating": 4.2, "top_reviews": []}])
  progress: list[tuple[str, int]] = []

  async def _on_phase(step: str, completed: int, message: str) -> None:
    progress.append((step, completed))

  outcome = await MarketAnalyzer(model, timeout_seconds=5).analyze(data, on_phase=_on_phase)

  assert progress == [("phase_1", 0), ("phase_2", 1), ("phase_3", 2), ("phase_4", 3)]
  assert outcome.tokens_used == 40
  assert outcome.result == {"topPainPoints": [{"title": "slippery"}], "topQuestions": [], "marketSummary": "crowded", "strategy": "premium"}
  assert "slippery" in model.prompts[1]
