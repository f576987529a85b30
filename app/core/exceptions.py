"""Exception handlers that turn failures into `{"detail", "requestId"}` responses."""

import logging
from typing import Any

from app.ai.errors import GenerationTimeoutError
from app.core.errors import ProviderError
from app.core.json import DecimalJSONResponse
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

logger = logging.getLogger("uvicorn.error")

_REDACTED_DETAIL_KEYS = frozenset({"input", "body", "payload", "content", "final_text", "final_texts"})
_VISIBLE_UPSTREAM_STATUSES = frozenset({status.HTTP_502_BAD_GATEWAY, status.HTTP_504_GATEWAY_TIMEOUT})


def _json_safe(value: Any) -> Any:
  # Native JSON primitives pass through unchanged.
  if value is None or isinstance(value, bool | int | float | str):
    return value
  # Recurse so nested contexts stay serializable.
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  # Exceptions from validator contexts become "Type: message".
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _respond(request: Request, status_code: int, detail: Any, headers: dict[str, str] | None = None) -> DecimalJSONResponse:
  body: dict[str, Any] = {"detail": detail}
  # Attach the request id so client reports can be matched to server logs.
  request_id = getattr(request.state, "request_id", None)
  if request_id:
    body["requestId"] = request_id
  return DecimalJSONResponse(status_code=status_code, content=body, headers=headers)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop the echoed request input from pydantic errors, including inside `ctx`."""
  cleaned: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key != "input"}
    # Validator contexts can echo the input as well.
    ctx = entry.get("ctx")
    if isinstance(ctx, dict):
      entry["ctx"] = {key: value for key, value in ctx.items() if key != "input"}
    cleaned.append(_json_safe(entry))
  return cleaned


def _sanitize_http_detail(detail: Any) -> Any:
  """Strip request bodies and listing drafts from a detail before it is logged."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in _REDACTED_DETAIL_KEYS}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


def _describe(request: Request) -> str:
  return f"request_id={getattr(request.state, 'request_id', None)} path={request.url.path}"


async def global_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  """Last resort for anything a route let escape; the detail is shown only in debug mode."""
  from app.config import get_settings

  logger.error("Unhandled %s %s", type(exc).__name__, _describe(request), exc_info=True)
  detail = _json_safe(exc) if get_settings().debug else "Internal Server Error"
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, detail)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Validation failed %s method=%s errors=%s", _describe(request), request.method, errors)
  return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
  """
  Pass HTTPException details through, except for internal 5xx errors.

  502 and 504 carry provider messages the user is meant to see, and keep
  their headers so a failed generation still reports its X-Listing-Id.
  """
  from app.config import get_settings

  headers = getattr(exc, "headers", None)
  # Internal failures keep their detail in the logs only.
  if exc.status_code >= 500 and exc.status_code not in _VISIBLE_UPSTREAM_STATUSES:
    logger.error("HTTP %s %s detail=%s", exc.status_code, _describe(request), exc.detail, exc_info=True)
    return _respond(request, exc.status_code, "Internal Server Error")

  if exc.status_code >= 500:
    logger.warning("Upstream failure HTTP %s %s detail=%s", exc.status_code, _describe(request), exc.detail)
  # 4xx responses are logged only when explicitly enabled.
  elif get_settings().log_http_4xx:
    logger.warning("HTTP %s %s detail=%s", exc.status_code, _describe(request), _sanitize_http_detail(exc.detail))

  return _respond(request, exc.status_code, exc.detail, headers)


async def provider_exception_handler(request: Request, exc: ProviderError) -> DecimalJSONResponse:
  logger.warning("Provider %s failed %s error=%s", exc.provider, _describe(request), exc)
  return _respond(request, status.HTTP_502_BAD_GATEWAY, str(exc))


async def generation_timeout_exception_handler(request: Request, exc: GenerationTimeoutError) -> DecimalJSONResponse:
  logger.warning("Generation exceeded %ss %s", exc.timeout_seconds, _describe(request))
  return _respond(request, status.HTTP_504_GATEWAY_TIMEOUT, str(exc))
