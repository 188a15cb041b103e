"""Storage interfaces for generated documents."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Protocol

from compliance_engine.jobs.models import DocumentRecord


class DocumentStore(Protocol):
  """Durable create/update contract for generated documents."""

  async def create_document(self, record: DocumentRecord) -> DocumentRecord:
    """Persist a new document."""

  async def update_quality(self, document_id: str, *, quality_score: int, quality_details: dict[str, Any] | None = None) -> DocumentRecord | None:
    """Attach a quality score to an existing document."""

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    """Fetch one document."""

  async def list_for_job(self, job_id: str) -> list[DocumentRecord]:
    """Return a job's documents in generation order."""


class InMemoryDocumentStore:
  """Process-local document store used for development and tests."""

  def __init__(self) -> None:
    self._documents: dict[str, DocumentRecord] = {}
    self._lock = asyncio.Lock()

  async def create_document(self, record: DocumentRecord) -> DocumentRecord:
    async with self._lock:
      if record.document_id in self._documents:
        raise ValueError(f"Document {record.document_id} already exists.")
      self._documents[record.document_id] = copy.deepcopy(record)
      return copy.deepcopy(record)

  async def update_quality(self, document_id: str, *, quality_score: int, quality_details: dict[str, Any] | None = None) -> DocumentRecord | None:
    async with self._lock:
      record = self._documents.get(document_id)
      if record is None:
        return None
      record.quality_score = quality_score
      record.quality_details = copy.deepcopy(quality_details)
      return copy.deepcopy(record)

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    async with self._lock:
      record = self._documents.get(document_id)
      return copy.deepcopy(record) if record is not None else None

  async def list_for_job(self, job_id: str) -> list[DocumentRecord]:
    async with self._lock:
      records = [copy.deepcopy(record) for record in self._documents.values() if record.job_id == job_id]
    return sorted(records, key=lambda record: record.sequence)
