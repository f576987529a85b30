"""Identifier utilities."""

from __future__ import annotations

import re
import uuid

_ASIN_RE = re.compile(r"^[A-Z0-9]{10}$")


def generate_listing_id() -> str:
  """Return a new listing identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new background job identifier."""
  return str(uuid.uuid4())


def generate_record_id() -> str:
  """Return an identifier for section and lookup rows."""
  return str(uuid.uuid4())


def normalize_asin(raw: str) -> str:
  """Trim and upper-case an ASIN without validating it."""
  return raw.strip().upper()


def is_valid_asin(asin: str) -> bool:
  """Check a normalized ASIN: exactly 10 upper-case letters or digits."""
  return bool(_ASIN_RE.match(asin))
