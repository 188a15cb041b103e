from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from compliance_engine.ai.errors import OrchestrationError, UnknownFrameworkError
from compliance_engine.api.routes import generation_jobs, providers
from compliance_engine.config import get_settings
from compliance_engine.core.exceptions import global_exception_handler, http_exception_handler, orchestration_exception_handler, request_validation_exception_handler, unknown_framework_exception_handler
from compliance_engine.core.lifespan import lifespan
from compliance_engine.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware


def create_app() -> FastAPI:
  settings = get_settings()
  application = FastAPI(title="Compliance Engine", version="0.1.0", lifespan=lifespan)

  application.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["content-type", "authorization", "x-user-id", "x-request-id"],
    expose_headers=["content-length", "x-request-id", "retry-after"],
  )

  application.add_exception_handler(Exception, global_exception_handler)
  application.add_exception_handler(HTTPException, http_exception_handler)
  application.add_exception_handler(OrchestrationError, orchestration_exception_handler)
  application.add_exception_handler(UnknownFrameworkError, unknown_framework_exception_handler)
  application.add_exception_handler(RequestValidationError, request_validation_exception_handler)

  application.add_middleware(RequestLoggingMiddleware)
  application.add_middleware(SecurityHeadersMiddleware)

  @application.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    """Return a simple health status."""
    return {"status": "ok", "version": "0.1.0"}

  application.include_router(generation_jobs.router, prefix="/v1/generation-jobs", tags=["generation-jobs"])
  application.include_router(providers.router, prefix="/v1/providers", tags=["providers"])
  return application


app = create_app()
