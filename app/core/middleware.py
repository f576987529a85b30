import json
import logging
import time
import uuid
from typing import Any

from app.config import get_settings
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("app.core.middleware")

# Credentials and free text a user typed into a listing never reach the logs.
_SENSITIVE_KEYS = {"password", "token", "api_key", "apikey", "authorization", "cookie", "secret", "final_text", "final_texts", "notes"}
_STRIPPED_RESPONSE_HEADERS = ("x-powered-by", "server")


def _redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys from a dictionary or list recursively."""
  # Mask values by key name at any depth.
  if isinstance(data, dict):
    return {key: ("***" if key.lower() in _SENSITIVE_KEYS else _redact_sensitive_keys(value)) for key, value in data.items()}
  if isinstance(data, list):
    return [_redact_sensitive_keys(item) for item in data]
  return data


def _request_target(scope: Scope) -> str:
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  return f"{path}?{query_string.decode('latin-1')}" if query_string else path


def _format_body_for_log(body: bytes, content_type: str | None, max_bytes: int) -> str:
  """Render a JSON or text body for logs, truncated and with secrets masked."""
  if not body:
    return "<empty>"

  # Only JSON and text payloads are readable in a log line.
  normalized = (content_type or "").lower()
  is_json = "application/json" in normalized or normalized.endswith("+json")
  if not is_json and not normalized.startswith("text/"):
    return f"<non-text body {len(body)} bytes>"

  text = body[:max_bytes].decode("utf-8", errors="replace")
  if len(body) > max_bytes:
    # Truncated JSON cannot be parsed for redaction.
    return f"{text}...(truncated)"

  if is_json:
    try:
      return json.dumps(_redact_sensitive_keys(json.loads(text)), ensure_ascii=True)
    except json.JSONDecodeError:
      return text
  return text


class RequestLoggingMiddleware:
  """Log method, path, status and duration per request, tagged with a request id."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Tag the request so handlers and log lines share one id.
    settings = get_settings()
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    start_time = time.perf_counter()
    logger.info("Incoming request request_id=%s %s %s", request_id, scope.get("method", "UNKNOWN"), _request_target(scope))

    receive_wrapper = receive
    if settings.log_http_bodies:
      receive_wrapper = await self._buffer_request_body(scope, receive, request_id, settings.log_http_body_bytes)

    status_code = 0

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      # Capture the status and echo the request id back to the caller.
      if message["type"] == "http.response.start":
        status_code = message.get("status", 0)
        headers = MutableHeaders(scope=message)
        if "x-request-id" not in headers:
          headers["x-request-id"] = request_id
      await send(message)

    await self.app(scope, receive_wrapper, send_wrapper)
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code, elapsed_ms)

  @staticmethod
  async def _buffer_request_body(scope: Scope, receive: Receive, request_id: str, max_bytes: int) -> Receive:
    """Drain the body for logging and return a receive callable that replays it."""
    chunks: list[bytes] = []
    more_body = True
    while more_body:
      message = await receive()
      if message.get("type") != "http.request":
        break
      chunks.append(message.get("body", b""))
      more_body = message.get("more_body", False)
    body = b"".join(chunks)

    # Header names arrive as raw bytes in the ASGI scope.
    headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
    logger.info("Request body request_id=%s body=%s", request_id, _format_body_for_log(body, headers.get("content-type"), max_bytes))

    # Downstream handlers must still see the body we consumed.
    replayed = False

    async def replay() -> Message:
      nonlocal replayed
      if replayed:
        return {"type": "http.request", "body": b"", "more_body": False}
      replayed = True
      return {"type": "http.request", "body": body, "more_body": False}

    return replay


class SecurityHeadersMiddleware:
  """Strip headers that advertise the server stack."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in _STRIPPED_RESPONSE_HEADERS:
          if name in headers:
            del headers[name]
      await send(message)

    await self.app(scope, receive, send_wrapper)
