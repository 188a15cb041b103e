from __future__ import annotations

import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from compliance_engine.core.database import Base

_UTC_TEXT_NOW = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class GenerationJobRow(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (Index("ix_generation_jobs_active", "status", postgresql_where=text("status IN ('queued', 'running')")),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  company_profile_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  frameworks: Mapped[list] = mapped_column(JSONB, nullable=False)
  options_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  total_documents: Mapped[int] = mapped_column(Integer, nullable=False)
  documents_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_document: Mapped[str | None] = mapped_column(String, nullable=True)
  units_json: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_TEXT_NOW)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_TEXT_NOW)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class GeneratedDocumentRow(Base):
  __tablename__ = "generated_documents"

  document_id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("generation_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  company_profile_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  framework: Mapped[str] = mapped_column(String, nullable=False)
  template_id: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  category: Mapped[str] = mapped_column(String, nullable=False)
  document_type: Mapped[str] = mapped_column(String, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  provider_used: Mapped[str] = mapped_column(String, nullable=False)
  model: Mapped[str | None] = mapped_column(String, nullable=True)
  quality_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  quality_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_by: Mapped[str | None] = mapped_column(String, nullable=True)
  sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_TEXT_NOW)


class AuditEventRow(Base):
  __tablename__ = "audit_events"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  action: Mapped[str] = mapped_column(String, nullable=False, index=True)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  metadata_json: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
