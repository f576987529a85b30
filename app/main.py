from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.ai.errors import GenerationTimeoutError
from app.api.routes import asin_lookup, jobs, listings, market_intelligence, reviews
from app.config import get_settings
from app.core.errors import ProviderError
from app.core.exceptions import generation_timeout_exception_handler, global_exception_handler, http_exception_handler, provider_exception_handler, request_validation_exception_handler
from app.core.json import DecimalJSONResponse
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="Listing Builder", version="0.1.0", default_response_class=DecimalJSONResponse, lifespan=lifespan)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.allowed_origins,
  allow_credentials=True,
  allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
  allow_headers=["content-type", "x-user-id"],
  expose_headers=["content-length", "content-disposition", "x-listing-id", "x-request-id"],
)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(GenerationTimeoutError, generation_timeout_exception_handler)
app.add_exception_handler(ProviderError, provider_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(asin_lookup.router, prefix="/v1/asin-lookup", tags=["asin-lookup"])
app.include_router(listings.router, prefix="/v1/listings", tags=["listings"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(reviews.router, prefix="/v1/reviews", tags=["reviews"])
app.include_router(market_intelligence.router, prefix="/v1/market-intelligence", tags=["market-intelligence"])
