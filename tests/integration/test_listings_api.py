from __future__ import annotations

import pytest

from app.ai.errors import AIProviderError
from app.listings.writer import ListingWriter

PRODUCT = {
  "product_name": "Cork Yoga Mat",
  "brand": "Acme",
  "marketplace": "US",
  "attributes": {"Material": "Cork"},
  "keywords": [
    {"keyword": "yoga mat", "relevance": 0.9, "search_volume": 12000},
    {"keyword": "cork", "relevance": 0.5, "search_volume": 900},
    {"keyword": "travel", "relevance": 0.2, "search_volume": 300},
  ],
}

BULLETS = {f"bullet_{index}": f"Bullet {index} final" for index in range(1, 6)}


@pytest.fixture
def model(monkeypatch: pytest.MonkeyPatch, scripted_model_cls):
  scripted = scripted_model_cls()
  monkeypatch.setattr("app.services.listings._get_listing_writer", lambda _settings: ListingWriter(scripted, timeout_seconds=5))
  return scripted


async def _start(api_client, model) -> dict:
  model.queue({"titles": ["Acme Cork Yoga Mat", "Acme Non Slip Yoga Mat"]})
  response = await api_client.post("/v1/listings/generate", json={"phase": "title", "product": PRODUCT})
  assert response.status_code == 200
  return response.json()


@pytest.mark.anyio
async def test_listing_moves_through_every_phase(api_client, model, listings_repo) -> None:
  listing = await _start(api_client, model)
  listing_id = listing["listing_id"]
  assert listing["phase"] == "title"
  assert listing["sections"][0]["label"] == "Title"
  assert listing["sections"][0]["char_limit"] == 200
  assert listing["keyword_coverage"]["coverage_score"] == 67
  assert listing["keyword_coverage"]["placed"][0] == {"keyword": "yoga mat", "relevance": 0.9, "placed_in": "title", "search_volume": 12000}
  assert listing["keyword_coverage"]["remaining"][0]["priority"] == "low"

  model.queue({"bullets": [[f"Bullet {index} with travel strap"] for index in range(1, 6)]})
  bullets = (await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": {"title": "Acme Cork Yoga Mat"}})).json()
  assert bullets["phase"] == "bullets"
  title = bullets["sections"][0]
  assert (title["final_text"], title["is_approved"]) == ("Acme Cork Yoga Mat", True)
  assert [section["label"] for section in bullets["sections"][1:]] == ["Bullet 1", "Bullet 2", "Bullet 3", "Bullet 4", "Bullet 5"]
  assert bullets["keyword_coverage"]["coverage_score"] == 100
  assert "Title: Acme Cork Yoga Mat" in model.prompts[-1]

  model.queue({"descriptions": ["A cork mat for every practice."], "search_terms": ["eco exercise mat"]})
  description = (await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": BULLETS})).json()
  assert description["phase"] == "description"
  # bullets no longer mention travel once confirmed, and the description drafts do not either
  assert [kw["keyword"] for kw in description["keyword_coverage"]["remaining"]] == ["travel"]

  model.queue({"subject_matter": [["Yoga"], ["Pilates"]], "backend_attributes": {"material": ["cork"]}})
  backend = (await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": {"description": "A cork mat for every practice.", "search_terms": "eco exercise mat"}})).json()
  assert backend["phase"] == "backend"
  assert backend["sections"][-1]["variations"] == ["Yoga; Pilates"]
  assert backend["backend_attributes"] == {"material": ["cork"]}

  prompts_before = len(model.prompts)
  complete = (await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": {"subject_matter": "Yoga; Pilates"}})).json()
  assert complete["phase"] == "complete"
  assert complete["status"] == "review"
  assert complete["tokens_used"] == 400
  assert len(model.prompts) == prompts_before

  again = await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": {}})
  assert again.status_code == 400
  assert again.json()["detail"] == "Listing generation is complete. Reset the listing to start over."

  exported = await api_client.get(f"/v1/listings/{listing_id}/export", params={"format": "csv"})
  assert exported.headers["content-disposition"] == f'attachment; filename="listing-{listing_id}-csv.csv"'
  lines = exported.text.splitlines()
  assert lines[0] == "Section,Content,Character Count"
  assert lines[1] == "Title,Acme Cork Yoga Mat,18"
  assert lines[4] == "Bullet 3,Bullet 3 final,14"

  clipboard = await api_client.get(f"/v1/listings/{listing_id}/export")
  assert clipboard.text.startswith("TITLE: Acme Cork Yoga Mat\n\nBULLET 1: Bullet 1 final")

  flat = (await api_client.get(f"/v1/listings/{listing_id}/export", params={"format": "flat_file"})).text.splitlines()
  assert flat[0].startswith("item_name,bullet_point1,")
  assert flat[1].endswith("eco exercise mat,Yoga; Pilates")


@pytest.mark.anyio
async def test_confirm_with_empty_bullet_three_is_rejected_without_changes(api_client, model, listings_repo) -> None:
  listing_id = (await _start(api_client, model))["listing_id"]
  model.queue({"bullets": [[f"Bullet {index} draft"] for index in range(1, 6)]})
  await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": {"title": "Acme Cork Yoga Mat"}})
  saves_before = len(listings_repo.saves)
  prompts_before = len(model.prompts)

  response = await api_client.post(f"/v1/listings/{listing_id}/confirm", json={"final_texts": {**BULLETS, "bullet_3": "   "}})

  assert response.status_code == 400
  assert response.json()["detail"] == "Bullet 3 needs final text before the bullets phase can be confirmed."
  assert len(listings_repo.saves) == saves_before
  assert len(model.prompts) == prompts_before
  stored = listings_repo.listings[listing_id]
  assert stored.phase == "bullets"
  assert stored.section("bullet_1").final_text is None


@pytest.mark.anyio
async def test_provider_failure_keeps_listing_and_allows_retry(api_client, model, listings_repo) -> None:
  model.queue(AIProviderError("scripted", "Anthropic is overloaded"))
  failed = await api_client.post("/v1/listings/generate", json={"phase": "title", "product": PRODUCT})

  assert failed.status_code == 502
  assert failed.json()["detail"] == "Anthropic is overloaded"
  listing_id = failed.headers["x-listing-id"]
  stored = listings_repo.listings[listing_id]
  assert (stored.phase, stored.generation_error) == ("pending", "Anthropic is overloaded")

  model.queue({"titles": ["Acme Cork Yoga Mat"]})
  retried = await api_client.post("/v1/listings/generate", json={"phase": "title", "listing_id": listing_id})
  assert retried.status_code == 200
  assert retried.json()["generation_error"] is None
  assert retried.json()["phase"] == "title"


@pytest.mark.anyio
async def test_phase_order_and_new_listing_guards(api_client, model) -> None:
  no_product = await api_client.post("/v1/listings/generate", json={"phase": "title"})
  assert no_product.status_code == 400

  wrong_phase = await api_client.post("/v1/listings/generate", json={"phase": "bullets", "product": PRODUCT})
  assert wrong_phase.json()["detail"] == "A new listing starts with the title phase."

  bad_marketplace = await api_client.post("/v1/listings/generate", json={"phase": "title", "product": {**PRODUCT, "marketplace": "XX"}})
  assert bad_marketplace.status_code == 400

  listing_id = (await _start(api_client, model))["listing_id"]
  skipped = await api_client.post("/v1/listings/generate", json={"phase": "description", "listing_id": listing_id, "confirmed": {"title": "Acme"}})
  assert skipped.status_code == 400
  assert "the next phase is bullets" in skipped.json()["detail"]


@pytest.mark.anyio
async def test_patch_merges_edits_and_recomputes_coverage(api_client, model) -> None:
  listing_id = (await _start(api_client, model))["listing_id"]

  patched = await api_client.patch(f"/v1/listings/{listing_id}", json={"notes": "check brand voice", "sections": {"title": {"final_text": "Acme Travel Mat", "selected_variation": 1}}})
  body = patched.json()
  assert patched.status_code == 200
  assert body["notes"] == "check brand voice"
  assert body["sections"][0]["final_text"] == "Acme Travel Mat"
  assert body["sections"][0]["selected_variation"] == 1
  assert [kw["keyword"] for kw in body["keyword_coverage"]["placed"]] == ["travel"]

  status_only = (await api_client.patch(f"/v1/listings/{listing_id}", json={"status": "approved"})).json()
  assert status_only["notes"] == "check brand voice"
  assert status_only["status"] == "approved"

  cleared = (await api_client.patch(f"/v1/listings/{listing_id}", json={"notes": None, "sections": {"title": {"final_text": None}}})).json()
  assert cleared["notes"] is None
  assert cleared["sections"][0]["final_text"] is None
  assert cleared["sections"][0]["is_approved"] is False

  coverage = (await api_client.get(f"/v1/listings/{listing_id}/coverage")).json()
  assert coverage["coverage_score"] == 67

  unknown = await api_client.patch(f"/v1/listings/{listing_id}", json={"sections": {"headline": {"final_text": "x"}}})
  assert unknown.status_code == 400
  missing = await api_client.patch(f"/v1/listings/{listing_id}", json={"sections": {"bullet_1": {"final_text": "x"}}})
  assert missing.json()["detail"] == "Section 'bullet_1' has not been generated yet."
  out_of_range = await api_client.patch(f"/v1/listings/{listing_id}", json={"sections": {"title": {"selected_variation": 5}}})
  assert out_of_range.json()["detail"] == "Section 'title' has 2 variations."


@pytest.mark.anyio
async def test_reset_ownership_and_listing(api_client, model) -> None:
  listing_id = (await _start(api_client, model))["listing_id"]

  listed = (await api_client.get("/v1/listings")).json()["data"]
  assert [(item["listing_id"], item["phase"], item["coverage_score"]) for item in listed] == [(listing_id, "title", 67)]

  forbidden = await api_client.get(f"/v1/listings/{listing_id}", headers={"x-user-id": "user-2"})
  assert forbidden.status_code == 403
  missing = await api_client.get("/v1/listings/does-not-exist")
  assert missing.status_code == 404

  reset = (await api_client.post(f"/v1/listings/{listing_id}/reset")).json()
  assert (reset["phase"], reset["sections"], reset["status"]) == ("pending", [], "draft")
