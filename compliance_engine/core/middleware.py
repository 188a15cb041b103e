import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("compliance_engine.core.middleware")

# Caller-supplied ids are echoed back only when they look like opaque tokens.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def _redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys from a dictionary or list recursively."""
  if isinstance(data, dict):
    sensitive_keys = {"password", "token", "key", "authorization", "cookie", "secret", "email", "phone", "address", "additionalcontext", "additional_context"}
    return {k: ("***" if k.lower() in sensitive_keys else _redact_sensitive_keys(v)) for k, v in data.items()}
  if isinstance(data, list):
    return [_redact_sensitive_keys(item) for item in data]
  return data


def _normalize_headers(scope: Scope) -> dict[str, str]:
  """Decode scope headers into a lowercase mapping."""
  return {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}


def _resolve_request_id(headers: dict[str, str]) -> str:
  incoming = headers.get("x-request-id", "").strip()
  if incoming and _REQUEST_ID_PATTERN.match(incoming):
    return incoming
  return str(uuid.uuid4())


def _client_ip(scope: Scope, headers: dict[str, str]) -> str | None:
  forwarded = headers.get("x-forwarded-for")
  if forwarded:
    return forwarded.split(",")[0].strip() or None
  client = scope.get("client")
  if client:
    return client[0]
  return None


class RequestLoggingMiddleware:
  """Assign a request id and log request/response metadata without bodies."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = _normalize_headers(scope)
    request_id = _resolve_request_id(headers)
    client_ip = _client_ip(scope, headers)
    scope.setdefault("state", {}).update(request_id=request_id, client_ip=client_ip)

    method = scope.get("method", "UNKNOWN")
    path = scope.get("path", "")
    started = time.perf_counter()
    logger.info("Request started request_id=%s %s %s client=%s", request_id, method, path, client_ip or "-")
    if headers.get("content-length"):
      logger.debug("Request body request_id=%s content-type=%s bytes=%s", request_id, headers.get("content-type"), headers["content-length"])

    status_code = 0

    async def send_with_request_id(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message.get("status", 0)
        MutableHeaders(scope=message).setdefault("x-request-id", request_id)
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      logger.info("Request finished request_id=%s %s %s status=%d duration_ms=%.1f", request_id, method, path, status_code, elapsed_ms)


# Identification headers removed from every response.
_STRIPPED_RESPONSE_HEADERS = ("server", "x-powered-by")

_DEFAULT_SECURITY_HEADERS = {"x-content-type-options": "nosniff", "x-frame-options": "DENY", "referrer-policy": "no-referrer"}


class SecurityHeadersMiddleware:
  """Hide server identification and set conservative browser security headers."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_with_security_headers(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        response_headers = MutableHeaders(scope=message)
        for name in _STRIPPED_RESPONSE_HEADERS:
          if name in response_headers:
            del response_headers[name]
        for name, value in _DEFAULT_SECURITY_HEADERS.items():
          response_headers.setdefault(name, value)
      await send(message)

    await self.app(scope, receive, send_with_security_headers)
