import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from compliance_engine.ai.errors import JobQueueFullError, OrchestrationError, RateLimitExceededError, UnknownFrameworkError
from compliance_engine.config import Settings

logger = logging.getLogger("uvicorn.error")

# Keys whose values may hold prompts, company data or generated text.
_PAYLOAD_KEYS = frozenset({"input", "body", "payload", "content", "additionalContext", "companyProfile"})

QUEUE_RETRY_AFTER_SECONDS = 30


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _request_context(request: Request) -> tuple[Settings, str | None]:
  from compliance_engine.config import get_settings

  return get_settings(), getattr(request.state, "request_id", None)


def _error_response(status_code: int, detail: Any, request_id: str | None, *, headers: dict[str, str] | None = None) -> JSONResponse:
  """Build the client-facing error body: ``detail`` plus the request id when known."""
  content: dict[str, Any] = {"detail": detail}
  if request_id:
    content["requestId"] = request_id
  return JSONResponse(status_code=status_code, content=content, headers=headers)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    ctx = scrubbed.get("ctx")
    if isinstance(ctx, dict):
      scrubbed["ctx"] = {key: value for key, value in ctx.items() if key != "input"}
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in _PAYLOAD_KEYS}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Last-resort handler: log with traceback, answer with a generic 500."""
  _, request_id = _request_context(request)
  logger.error("Unhandled exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", request_id)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Return 422 with validation errors stripped of submitted values."""
  _, request_id = _request_context(request)
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, errors)
  return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, errors, request_id)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through; replace 5xx details with a generic message."""
  settings, request_id = _request_context(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))
    return _error_response(exc.status_code, "Internal Server Error", request_id, headers=exc.headers)

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))
  return _error_response(exc.status_code, exc.detail, request_id, headers=exc.headers)


async def orchestration_exception_handler(request: Request, exc: OrchestrationError) -> JSONResponse:
  """Map engine failures to 429, 503 or a generic 500."""
  settings, request_id = _request_context(request)

  if isinstance(exc, RateLimitExceededError):
    if settings.log_http_4xx:
      logger.warning("Rate limited request_id=%s path=%s retry_after=%s", request_id, request.url.path, exc.retry_after_seconds)
    headers = {"Retry-After": str(exc.retry_after_seconds)} if exc.retry_after_seconds is not None else None
    return _error_response(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded", request_id, headers=headers)

  if isinstance(exc, JobQueueFullError):
    logger.warning("Generation queue full request_id=%s path=%s", request_id, request.url.path)
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc), request_id, headers={"Retry-After": str(QUEUE_RETRY_AFTER_SECONDS)})

  # Provider messages may echo prompts or company data.
  logger.error("Orchestration failure request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", request_id)


async def unknown_framework_exception_handler(request: Request, exc: UnknownFrameworkError) -> JSONResponse:
  """Reject requests naming a framework without templates."""
  settings, request_id = _request_context(request)
  if settings.log_http_4xx:
    logger.warning("Unknown framework request_id=%s path=%s detail=%s", request_id, request.url.path, exc)
  return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), request_id)
