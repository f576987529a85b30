"""Amazon marketplaces and their listing character limits."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CharLimits:
  title: int = 200
  bullet: int = 500
  bullet_count: int = 5
  description: int = 2000
  search_terms: int = 250

  def for_section(self, section_type: str) -> int:
    """Character limit for a section; subject matter shares the search terms limit."""
    if section_type == "title":
      return self.title
    if section_type.startswith("bullet_"):
      return self.bullet
    if section_type == "description":
      return self.description
    return self.search_terms


@dataclass(frozen=True)
class Marketplace:
  code: str
  name: str
  amazon_domain: str
  language: str
  char_limits: CharLimits = CharLimits()

  @property
  def scraper_domain(self) -> str:
    """Domain suffix the scraping API expects, e.g. amazon.co.uk -> co.uk."""
    return self.amazon_domain.removeprefix("amazon.")


DEFAULT_CHAR_LIMITS = CharLimits()

MARKETPLACES: dict[str, Marketplace] = {
  marketplace.code: marketplace
  for marketplace in (
    Marketplace("US", "United States", "amazon.com", "English"),
    Marketplace("CA", "Canada", "amazon.ca", "English"),
    Marketplace("MX", "Mexico", "amazon.com.mx", "Spanish"),
    Marketplace("UK", "United Kingdom", "amazon.co.uk", "British English"),
    Marketplace("DE", "Germany", "amazon.de", "German"),
    Marketplace("FR", "France", "amazon.fr", "French"),
    Marketplace("IT", "Italy", "amazon.it", "Italian"),
    Marketplace("ES", "Spain", "amazon.es", "Spanish"),
    Marketplace("JP", "Japan", "amazon.co.jp", "Japanese", CharLimits(title=150, bullet=500, bullet_count=5, description=2000, search_terms=500)),
    Marketplace("IN", "India", "amazon.in", "English"),
    Marketplace("AU", "Australia", "amazon.com.au", "Australian English"),
    Marketplace("AE", "United Arab Emirates", "amazon.ae", "English"),
  )
}


def get_marketplace(code: str) -> Marketplace:
  """Look up a marketplace by code, raising ValueError for unknown codes."""
  marketplace = MARKETPLACES.get(code.strip().upper())
  if marketplace is None:
    raise ValueError(f"Unknown marketplace '{code}'. Expected one of: {', '.join(sorted(MARKETPLACES))}.")
  return marketplace
