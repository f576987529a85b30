from . import asin_lookup, jobs, listings, market_intelligence, reviews

__all__ = ["asin_lookup", "jobs", "listings", "market_intelligence", "reviews"]
