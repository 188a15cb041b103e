"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

import logging

from sqlalchemy import select

from compliance_engine.core.database import get_session_factory
from compliance_engine.jobs.models import GenerationJob, JobStatus, UnitOutcome, utc_timestamp
from compliance_engine.schema.sql import GenerationJobRow

logger = logging.getLogger(__name__)


class PostgresJobsRepository:
  """Persist generation job records to Postgres."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: GenerationJob) -> None:
    async with self._session_factory() as session:
      row = GenerationJobRow(
        job_id=record.job_id,
        company_profile_id=record.company_profile_id,
        user_id=record.user_id,
        frameworks=list(record.frameworks),
        options_json=dict(record.options),
        status=record.status,
        progress=record.progress,
        total_documents=record.total_documents,
        documents_generated=record.documents_generated,
        current_document=record.current_document,
        units_json=[unit.as_dict() for unit in record.units],
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
      )
      session.add(row)
      await session.commit()

  async def get_job(self, job_id: str) -> GenerationJob | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJobRow, job_id)
      if row is None:
        return None
      return self._row_to_record(row)

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
    async with self._session_factory() as session:
      # Row lock keeps concurrent writers from interleaving progress updates.
      result = await session.execute(select(GenerationJobRow).where(GenerationJobRow.job_id == job_id).with_for_update())
      row = result.scalar_one_or_none()
      if row is None:
        return None
      if status is not None:
        row.status = status
      if progress is not None:
        if progress < row.progress:
          logger.warning("Ignoring progress decrease for job %s (%d -> %d)", job_id, row.progress, progress)
        else:
          row.progress = progress
      if documents_generated is not None:
        row.documents_generated = documents_generated
      if error_message is not None:
        row.error_message = error_message
      if current_document is not None:
        row.current_document = current_document
      if units is not None:
        row.units_json = [unit.as_dict() for unit in units]
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = utc_timestamp()
      await session.commit()
      await session.refresh(row)
      return self._row_to_record(row)

  async def list_active(self) -> list[GenerationJob]:
    async with self._session_factory() as session:
      result = await session.execute(select(GenerationJobRow).where(GenerationJobRow.status.in_(("queued", "running"))).order_by(GenerationJobRow.created_at))
      return [self._row_to_record(row) for row in result.scalars().all()]

  @staticmethod
  def _row_to_record(row: GenerationJobRow) -> GenerationJob:
    return GenerationJob(
      job_id=row.job_id,
      company_profile_id=row.company_profile_id,
      frameworks=list(row.frameworks or []),
      status=row.status,  # type: ignore[arg-type]
      total_documents=row.total_documents,
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress=row.progress,
      documents_generated=row.documents_generated,
      error_message=row.error_message,
      completed_at=row.completed_at,
      user_id=row.user_id,
      options=dict(row.options_json or {}),
      current_document=row.current_document,
      units=[UnitOutcome.from_dict(unit) for unit in row.units_json or []],
    )
