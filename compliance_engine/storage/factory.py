"""Select storage backends from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from compliance_engine.config import Settings
from compliance_engine.storage.audit_repo import AuditSink, InMemoryAuditSink
from compliance_engine.storage.documents_repo import DocumentStore, InMemoryDocumentStore
from compliance_engine.storage.jobs_repo import InMemoryJobsRepository, JobsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageBundle:
  jobs_repo: JobsRepository
  document_store: DocumentStore
  audit_sink: AuditSink


def build_storage(settings: Settings) -> StorageBundle:
  """Use Postgres when a DSN is configured, otherwise process-local stores."""
  if settings.pg_dsn:
    from compliance_engine.storage.postgres_audit_repo import PostgresAuditSink
    from compliance_engine.storage.postgres_documents_repo import PostgresDocumentStore
    from compliance_engine.storage.postgres_jobs_repo import PostgresJobsRepository

    return StorageBundle(jobs_repo=PostgresJobsRepository(), document_store=PostgresDocumentStore(), audit_sink=PostgresAuditSink())

  logger.warning("COMPLIANCE_PG_DSN is not set; jobs and documents are kept in memory only.")
  return StorageBundle(jobs_repo=InMemoryJobsRepository(), document_store=InMemoryDocumentStore(), audit_sink=InMemoryAuditSink())
