"""Job progress tracking utilities."""

from __future__ import annotations

from compliance_engine.jobs.models import GenerationJob, UnitOutcome, utc_timestamp
from compliance_engine.storage.jobs_repo import JobsRepository

# Progress stays below this value until the job completes.
MAX_RUNNING_PROGRESS = 99


def progress_percent(documents_generated: int, total_documents: int) -> int:
  """Half-up rounded percentage of processed units."""
  if total_documents <= 0:
    return 0
  return (documents_generated * 200 + total_documents) // (total_documents * 2)


class JobProgressTracker:
  """Track unit outcomes and push monotonic progress to the jobs repository."""

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, total_documents: int, initial_progress: int = 0) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._total_documents = max(total_documents, 1)
    self._documents_generated = 0
    self._progress = initial_progress
    self._units: list[UnitOutcome] = []

  @property
  def progress(self) -> int:
    return self._progress

  @property
  def documents_generated(self) -> int:
    return self._documents_generated

  @property
  def units(self) -> list[UnitOutcome]:
    return list(self._units)

  async def start(self) -> GenerationJob | None:
    """Mark the job running."""
    return await self._jobs_repo.update_job(self._job_id, status="running", progress=self._progress)

  async def unit_started(self, title: str) -> GenerationJob | None:
    """Record the document currently being processed without advancing progress."""
    return await self._jobs_repo.update_job(self._job_id, current_document=title)

  async def unit_finished(self, outcome: UnitOutcome) -> GenerationJob | None:
    """Count one processed unit and advance progress."""
    self._units.append(outcome)
    self._documents_generated += 1
    computed = min(progress_percent(self._documents_generated, self._total_documents), MAX_RUNNING_PROGRESS)
    self._progress = max(self._progress, computed)
    return await self._jobs_repo.update_job(self._job_id, progress=self._progress, documents_generated=self._documents_generated, units=self._units)

  async def complete(self) -> GenerationJob | None:
    """Finalize a successful job at 100 percent."""
    self._progress = 100
    return await self._jobs_repo.update_job(self._job_id, status="completed", progress=100, units=self._units, completed_at=utc_timestamp())

  async def fail(self, message: str) -> GenerationJob | None:
    """Set the job to failed, keeping the last reported progress."""
    return await self._jobs_repo.update_job(self._job_id, status="failed", error_message=message, units=self._units, completed_at=utc_timestamp())
