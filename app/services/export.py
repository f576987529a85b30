"""Plain-text and CSV exports for listings and fetched reviews."""

from __future__ import annotations

import csv
import io
import time
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from app.config import Settings
from app.jobs.models import JobRecord
from app.listings.marketplaces import get_marketplace
from app.listings.models import GenerationJob, bullet_section_types, canonical_section_order, section_label
from app.services.jobs import load_job
from app.services.listings import load_listing
from app.storage.factory import _get_jobs_repo
from fastapi import HTTPException, status

ExportFormat = Literal["clipboard", "csv", "flat_file"]

REVIEWS_CSV_HEADER = "ASIN,Rating,Title,Content,Author,Verified,Helpful Count,Date,Variant,Images"
LISTING_CSV_HEADER = ["Section", "Content", "Character Count"]
FLAT_FILE_BULLETS = 5
FLAT_FILE_HEADER = ["item_name", *[f"bullet_point{index}" for index in range(1, FLAT_FILE_BULLETS + 1)], "product_description", "generic_keywords", "subject_matter"]


# The reviews CSV quotes every text column but never the ASIN, numbers or Yes/No,
# a mix no csv.writer quoting mode produces, so its rows are assembled by hand.
def _quote(value: Any) -> str:
  """Double embedded quotes and wrap the field in quotes."""
  text = "" if value is None else str(value)
  return '"' + text.replace('"', '""') + '"'


def _number(value: Any) -> str:
  if value is None or value == "":
    return "0"
  return f"{float(value):g}"


def reviews_csv(asin: str, reviews: Iterable[Mapping[str, Any]]) -> str:
  """
  Render reviews as CSV.

  Text columns are always quoted; numbers and the Yes/No verified flag are not.
  Images is the image count. Rows are joined by a bare newline.
  """
  rows = [REVIEWS_CSV_HEADER]
  for review in reviews:
    rows.append(
      ",".join(
        [
          asin,
          _number(review.get("rating")),
          _quote(review.get("title")),
          _quote(review.get("content")),
          _quote(review.get("author")),
          "Yes" if review.get("is_verified") else "No",
          str(int(review.get("helpful_count") or 0)),
          _quote(review.get("timestamp")),
          _quote(review.get("product_attributes")),
          str(len(review.get("images") or [])),
        ]
      )
    )
  return "\n".join(rows)


def _texts(job: GenerationJob) -> dict[str, str]:
  return {section.section_type: section.selected_text() for section in job.sections}


def listing_clipboard(job: GenerationJob) -> str:
  texts = _texts(job)
  bullet_count = get_marketplace(job.marketplace).char_limits.bullet_count
  lines = [f"TITLE: {texts.get('title', '')}", ""]
  lines.extend(f"BULLET {index}: {texts.get(section_type, '')}" for index, section_type in enumerate(bullet_section_types(bullet_count), start=1))
  lines.extend(["", "DESCRIPTION:", texts.get("description", ""), "", f"SEARCH TERMS: {texts.get('search_terms', '')}", "", f"SUBJECT MATTER: {texts.get('subject_matter', '')}"])
  return "\n".join(lines)


def _write_csv(header: list[str], rows: list[list[str]]) -> str:
  buffer = io.StringIO()
  writer = csv.writer(buffer, lineterminator="\n")
  writer.writerow(header)
  writer.writerows(rows)
  return buffer.getvalue()


def listing_csv(job: GenerationJob) -> str:
  texts = _texts(job)
  bullet_count = get_marketplace(job.marketplace).char_limits.bullet_count
  rows = []
  for section_type in canonical_section_order(bullet_count):
    text = texts.get(section_type, "")
    rows.append([section_label(section_type), text, str(len(text))])
  return _write_csv(LISTING_CSV_HEADER, rows)


def listing_flat_file(job: GenerationJob) -> str:
  """One Seller Central flat-file row; extra bullets beyond five are not exported."""
  texts = _texts(job)
  row = [texts.get("title", ""), *[texts.get(section_type, "") for section_type in bullet_section_types(FLAT_FILE_BULLETS)], texts.get("description", ""), texts.get("search_terms", ""), texts.get("subject_matter", "")]
  return _write_csv(FLAT_FILE_HEADER, [row])


def render_listing(job: GenerationJob, export_format: ExportFormat) -> str:
  if export_format == "clipboard":
    return listing_clipboard(job)
  if export_format == "csv":
    return listing_csv(job)
  return listing_flat_file(job)


def _reviews_from_record(record: JobRecord) -> tuple[str, list[dict[str, Any]]]:
  if record.status != "completed" or not record.result_json:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Reviews are not ready to export (status {record.status}).")
  result = record.result_json
  return str(result.get("asin") or record.request.get("asin") or ""), list(result.get("reviews") or [])


async def export_reviews(job_id: str, settings: Settings, *, user_id: str | None) -> tuple[str, str]:
  """Return (filename, csv text) for a completed reviews job."""
  record = await load_job(_get_jobs_repo(settings), job_id, user_id=user_id, job_kind="reviews")
  asin, reviews = _reviews_from_record(record)
  filename = f"reviews-{asin}-{time.strftime('%Y-%m-%d', time.gmtime())}.csv"
  return filename, reviews_csv(asin, reviews)


async def export_listing(listing_id: str, export_format: ExportFormat, settings: Settings, *, user_id: str | None) -> tuple[str, str]:
  """Return (filename, text) for a listing export."""
  job = await load_listing(listing_id, settings, user_id=user_id)
  extension = "txt" if export_format == "clipboard" else "csv"
  return f"listing-{listing_id}-{export_format}.{extension}", render_listing(job, export_format)
