"""HTTP client for automating the Listing Builder API."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import TracebackType
from typing import Any

import httpx

from app.ai.errors import GenerationTimeoutError
from app.config import Settings
from app.jobs.poller import JobStatusSnapshot, NotificationSink, ProgressPoller, ResumableJob

logger = logging.getLogger(__name__)

GENERATION_TIMEOUT_SECONDS = 180.0
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 3.0


class ListingBuilderAPIError(RuntimeError):
  """Raised for non-2xx responses; message is the server's detail."""

  def __init__(self, status_code: int, detail: Any) -> None:
    super().__init__(detail if isinstance(detail, str) else f"HTTP {status_code}: {detail}")
    self.status_code = status_code
    self.detail = detail


class ListingBuilderClient:
  """
  Async client for batch lookups, phase generation and job status.

  Phase generation uses a 180 second deadline and raises GenerationTimeoutError
  when it passes, matching the server's own generation timeout. Background
  jobs are followed with watch_jobs() or, after a restart, resume_jobs().
  """

  def __init__(
    self,
    base_url: str,
    *,
    user_id: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    generation_timeout_seconds: float = GENERATION_TIMEOUT_SECONDS,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    headers = {"x-user-id": user_id} if user_id else {}
    self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout_seconds, transport=transport, trust_env=False)
    self._generation_timeout_seconds = generation_timeout_seconds
    self._poll_interval_seconds = poll_interval_seconds

  @classmethod
  def from_settings(cls, settings: Settings, base_url: str, **kwargs: Any) -> ListingBuilderClient:
    """Build a client that uses the configured generation timeout and poll interval."""
    kwargs.setdefault("generation_timeout_seconds", settings.ai_timeout_seconds)
    kwargs.setdefault("poll_interval_seconds", settings.poll_interval_seconds)
    return cls(base_url, **kwargs)

  async def __aenter__(self) -> ListingBuilderClient:
    return self

  async def __aexit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    await self._client.aclose()

  async def _request(self, method: str, path: str, *, timeout: float | None = None, **kwargs: Any) -> Any:
    request_kwargs: dict[str, Any] = dict(kwargs)
    if timeout is not None:
      request_kwargs["timeout"] = timeout
    response = await self._client.request(method, path, **request_kwargs)
    if response.is_error:
      try:
        detail = response.json().get("detail", response.text)
      except ValueError:
        detail = response.text
      logger.warning("%s %s returned %s: %s", method, path, response.status_code, detail)
      raise ListingBuilderAPIError(response.status_code, detail)
    return response.json()

  async def lookup_asins(self, asins: list[str], *, country: str = "US") -> dict[str, Any]:
    """Batch lookup; the response carries per-ASIN success and the aggregate message."""
    return await self._request("POST", "/v1/asin-lookup", json={"asins": asins, "country": country})

  async def _generation_call(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
    try:
      return await self._request("POST", path, json=payload, timeout=self._generation_timeout_seconds)
    except httpx.TimeoutException as exc:
      raise GenerationTimeoutError("listing-builder", self._generation_timeout_seconds) from exc

  async def generate_phase(self, phase: str, *, listing_id: str | None = None, product: dict[str, Any] | None = None, confirmed: dict[str, str] | None = None) -> dict[str, Any]:
    """Generate a listing phase; a new listing needs product and the title phase."""
    payload: dict[str, Any] = {"phase": phase}
    if listing_id is not None:
      payload["listing_id"] = listing_id
    if product is not None:
      payload["product"] = product
    if confirmed is not None:
      payload["confirmed"] = confirmed
    return await self._generation_call("/v1/listings/generate", payload)

  async def confirm_phase(self, listing_id: str, final_texts: dict[str, str]) -> dict[str, Any]:
    return await self._generation_call(f"/v1/listings/{listing_id}/confirm", {"final_texts": final_texts})

  async def get_listing(self, listing_id: str) -> dict[str, Any]:
    return await self._request("GET", f"/v1/listings/{listing_id}")

  async def get_job(self, job_id: str, *, wait_seconds: float = 0.0) -> dict[str, Any]:
    params = {"wait_seconds": wait_seconds} if wait_seconds > 0 else None
    timeout = self._client.timeout.read + wait_seconds if wait_seconds > 0 and self._client.timeout.read else None
    return await self._request("GET", f"/v1/jobs/{job_id}", params=params, timeout=timeout)

  async def list_reviews_jobs(self) -> list[dict[str, Any]]:
    return (await self._request("GET", "/v1/reviews"))["data"]

  async def list_market_jobs(self) -> list[dict[str, Any]]:
    return (await self._request("GET", "/v1/market-intelligence"))["data"]

  async def job_snapshot(self, job_id: str) -> JobStatusSnapshot:
    """Status source for ProgressPoller."""
    return JobStatusSnapshot.from_payload(await self.get_job(job_id))

  def watch_jobs(self, notify: NotificationSink, *, job_ids: Iterable[str] = (), resume_from: Iterable[ResumableJob] = (), interval_seconds: float | None = None) -> ProgressPoller:
    """Build a poller that reads job status through this client; call run() on it to start."""
    poller = ProgressPoller(fetch_status=self.job_snapshot, notify=notify, interval_seconds=interval_seconds or self._poll_interval_seconds)
    for job_id in job_ids:
      poller.track(job_id)
    poller.resume(resume_from)
    return poller

  async def resume_jobs(self, notify: NotificationSink, *, interval_seconds: float | None = None) -> ProgressPoller:
    """Re-attach to this user's unfinished reviews and market-intelligence jobs."""
    listed = [*await self.list_reviews_jobs(), *await self.list_market_jobs()]
    return self.watch_jobs(notify, resume_from=listed, interval_seconds=interval_seconds)
