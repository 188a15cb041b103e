"""Shared FastAPI dependencies for the generation API."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from compliance_engine.services.generation import GenerationJobManager, RateLimitDecision


def get_generation_manager(request: Request) -> GenerationJobManager:
  """Return the manager wired by the application lifespan."""
  manager = getattr(request.app.state, "generation_manager", None)
  if manager is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Generation engine is not running")
  return manager


def get_rate_limit_decision(
  x_ratelimit_decision: str | None = Header(default=None, alias="X-RateLimit-Decision"),  # noqa: B008
  retry_after: str | None = Header(default=None, alias="X-RateLimit-Retry-After"),  # noqa: B008
) -> RateLimitDecision:
  """Read the upstream rate limiter's verdict; absent means allowed."""
  if x_ratelimit_decision is None or x_ratelimit_decision.strip().lower() != "deny":
    return RateLimitDecision()
  retry_after_seconds = int(retry_after) if retry_after and retry_after.strip().isdigit() else None
  return RateLimitDecision(allowed=False, retry_after_seconds=retry_after_seconds)
