"""Postgres-backed audit log using SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import select

from compliance_engine.core.database import get_session_factory
from compliance_engine.schema.sql import AuditEventRow
from compliance_engine.storage.audit_repo import AuditEvent


class PostgresAuditSink:
  """Append audit events to the audit_events table."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def record(self, event: AuditEvent) -> None:
    async with self._session_factory() as session:
      session.add(AuditEventRow(action=event.action, entity_type=event.entity_type, entity_id=event.entity_id, user_id=event.user_id, metadata_json=dict(event.metadata), created_at=event.created_at))
      await session.commit()

  async def list_events(self, *, action: str | None = None, limit: int = 100) -> list[AuditEvent]:
    async with self._session_factory() as session:
      stmt = select(AuditEventRow).order_by(AuditEventRow.id.desc()).limit(limit)
      if action is not None:
        stmt = stmt.where(AuditEventRow.action == action)
      result = await session.execute(stmt)
      rows = list(result.scalars().all())
    rows.reverse()
    return [AuditEvent(action=row.action, entity_type=row.entity_type, entity_id=row.entity_id, user_id=row.user_id, metadata=dict(row.metadata_json or {}), created_at=row.created_at) for row in rows]
