"""Storage interfaces for the append-only audit log."""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class AuditEvent:
  """One audited action."""

  action: str
  entity_type: str
  entity_id: str | None
  user_id: str | None
  metadata: dict[str, Any] = field(default_factory=dict)
  created_at: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.UTC))

  def as_dict(self) -> dict[str, Any]:
    return {"action": self.action, "entityType": self.entity_type, "entityId": self.entity_id, "userId": self.user_id, "metadata": dict(self.metadata), "createdAt": self.created_at.isoformat()}


class AuditSink(Protocol):
  """Append-only audit log contract."""

  async def record(self, event: AuditEvent) -> None:
    """Append one event."""

  async def list_events(self, *, action: str | None = None, limit: int = 100) -> list[AuditEvent]:
    """Return the most recent events, newest last."""


class InMemoryAuditSink:
  """Process-local audit log used for development and tests."""

  def __init__(self) -> None:
    self._events: list[AuditEvent] = []
    self._lock = asyncio.Lock()

  async def record(self, event: AuditEvent) -> None:
    async with self._lock:
      self._events.append(event)

  async def list_events(self, *, action: str | None = None, limit: int = 100) -> list[AuditEvent]:
    async with self._lock:
      events = [event for event in self._events if action is None or event.action == action]
    return events[-limit:]

  @property
  def events(self) -> list[AuditEvent]:
    return list(self._events)
