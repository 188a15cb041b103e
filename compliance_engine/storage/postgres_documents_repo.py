"""Postgres-backed document store using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from compliance_engine.core.database import get_session_factory
from compliance_engine.jobs.models import DocumentRecord
from compliance_engine.schema.sql import GeneratedDocumentRow


class PostgresDocumentStore:
  """Persist generated documents to Postgres."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_document(self, record: DocumentRecord) -> DocumentRecord:
    async with self._session_factory() as session:
      row = GeneratedDocumentRow(
        document_id=record.document_id,
        job_id=record.job_id,
        company_profile_id=record.company_profile_id,
        framework=record.framework,
        template_id=record.template_id,
        title=record.title,
        category=record.category,
        document_type=record.document_type,
        content=record.content,
        status=record.status,
        provider_used=record.provider_used,
        model=record.model,
        quality_score=record.quality_score,
        quality_json=record.quality_details,
        created_by=record.created_by,
        sequence=record.sequence,
        created_at=record.created_at,
      )
      session.add(row)
      await session.commit()
      return record

  async def update_quality(self, document_id: str, *, quality_score: int, quality_details: dict[str, Any] | None = None) -> DocumentRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GeneratedDocumentRow, document_id)
      if row is None:
        return None
      row.quality_score = quality_score
      row.quality_json = quality_details
      await session.commit()
      return self._row_to_record(row)

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GeneratedDocumentRow, document_id)
      return self._row_to_record(row) if row is not None else None

  async def list_for_job(self, job_id: str) -> list[DocumentRecord]:
    async with self._session_factory() as session:
      result = await session.execute(select(GeneratedDocumentRow).where(GeneratedDocumentRow.job_id == job_id).order_by(GeneratedDocumentRow.sequence))
      return [self._row_to_record(row) for row in result.scalars().all()]

  @staticmethod
  def _row_to_record(row: GeneratedDocumentRow) -> DocumentRecord:
    return DocumentRecord(
      document_id=row.document_id,
      company_profile_id=row.company_profile_id,
      job_id=row.job_id,
      framework=row.framework,
      template_id=row.template_id,
      title=row.title,
      category=row.category,
      document_type=row.document_type,
      content=row.content,
      status=row.status,  # type: ignore[arg-type]
      provider_used=row.provider_used,
      created_at=row.created_at,
      model=row.model,
      quality_score=row.quality_score,
      quality_details=row.quality_json,
      created_by=row.created_by,
      sequence=row.sequence,
    )
