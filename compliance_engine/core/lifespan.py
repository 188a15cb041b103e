import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from compliance_engine.core.database import dispose_engine
from compliance_engine.core.logging import _initialize_logging
from compliance_engine.jobs.models import utc_timestamp
from compliance_engine.services.generation import GenerationJobManager, build_generation_manager
from compliance_engine.storage.factory import build_storage
from compliance_engine.storage.jobs_repo import JobsRepository

STALE_JOB_MESSAGE = "Generation interrupted by restart"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Configure logging, wire the generation engine and stop it on exit."""
  from compliance_engine.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("compliance_engine.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  if settings.pg_dsn:
    logger.info("Using Postgres storage at %s", _redact_dsn(settings.pg_dsn))

  # Tests pre-populate app.state with a manager built from fakes.
  manager: GenerationJobManager | None = getattr(app.state, "generation_manager", None)
  owns_manager = manager is None
  if manager is None:
    storage = build_storage(settings)
    manager = build_generation_manager(settings, jobs_repo=storage.jobs_repo, document_store=storage.document_store, audit_sink=storage.audit_sink)
    await _fail_stale_jobs(storage.jobs_repo, logger=logger)
    app.state.generation_manager = manager

  manager.start()
  try:
    yield
  finally:
    await manager.shutdown()
    if owns_manager:
      app.state.generation_manager = None
      await dispose_engine()
    logger.info("Shutdown complete.")


async def _fail_stale_jobs(jobs_repo: JobsRepository, *, logger: logging.Logger) -> None:
  """Fail jobs a previous process left queued or running; they have no worker anymore."""
  stale = await jobs_repo.list_active()
  for job in stale:
    await jobs_repo.update_job(job.job_id, status="failed", error_message=STALE_JOB_MESSAGE, completed_at=utc_timestamp())
  if stale:
    logger.warning("Marked %d stale job(s) as failed at startup", len(stale))


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
