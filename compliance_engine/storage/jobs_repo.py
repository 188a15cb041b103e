"""Storage interfaces for generation jobs."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Protocol

from compliance_engine.jobs.models import GenerationJob, JobStatus, UnitOutcome, utc_timestamp

logger = logging.getLogger(__name__)


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: GenerationJob) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress: int | None = None,
    documents_generated: int | None = None,
    error_message: str | None = None,
    current_document: str | None = None,
    units: list[UnitOutcome] | None = None,
    completed_at: str | None = None,
  ) -> GenerationJob | None:
    """Apply partial updates to a job; progress never moves backwards."""

  async def list_active(self) -> list[GenerationJob]:
    """Return jobs that are queued or running."""


class InMemoryJobsRepository:
  """Process-local jobs repository guarded by an asyncio lock."""

  def __init__(self) -> None:
    self._jobs: dict[str, GenerationJob] = {}
    self._lock = asyncio.Lock()

  async def create_job(self, record: GenerationJob) -> None:
    async with self._lock:
      if record.job_id in self._jobs:
        raise ValueError(f"Job {record.job_id} already exists.")
      self._jobs[record.job_id] = copy.deepcopy(record)

  async def get_job(self, job_id: str) -> GenerationJob | None:
    async with self._lock:
      record = self._jobs.get(job_id)
      # Hand out copies so pollers never observe a half-applied update.
      return copy.deepcopy(record) if record is not None else None

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress: int | None = None,
    documents_generated: int | None = None,
    error_message: str | None = None,
    current_document: str | None = None,
    units: list[UnitOutcome] | None = None,
    completed_at: str | None = None,
  ) -> GenerationJob | None:
    async with self._lock:
      record = self._jobs.get(job_id)
      if record is None:
        return None

      if status is not None:
        record.status = status
      if progress is not None:
        if progress < record.progress:
          logger.warning("Ignoring progress decrease for job %s (%d -> %d)", job_id, record.progress, progress)
        else:
          record.progress = progress
      if documents_generated is not None:
        record.documents_generated = documents_generated
      if error_message is not None:
        record.error_message = error_message
      if current_document is not None:
        record.current_document = current_document
      if units is not None:
        record.units = copy.deepcopy(units)
      if completed_at is not None:
        record.completed_at = completed_at
      record.updated_at = utc_timestamp()
      return copy.deepcopy(record)

  async def list_active(self) -> list[GenerationJob]:
    async with self._lock:
      return [copy.deepcopy(record) for record in self._jobs.values() if not record.is_terminal]
