"""Domain models for asynchronous document generation jobs."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["queued", "running", "completed", "failed"]
UnitStatus = Literal["generated", "blocked", "failed"]
DocumentStatus = Literal["complete", "blocked", "failed"]

# Sentinel provider values recorded for units that never produced content.
BLOCKED_PROVIDER = "blocked"
FAILED_PROVIDER = "failed"

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

_TRUE_FLAGS = frozenset({"1", "true", "yes", "on"})
_FALSE_FLAGS = frozenset({"0", "false", "no", "off", ""})


def utc_timestamp() -> str:
  """Return the current UTC time in the format stored on job records."""
  return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _parse_flag(name: str, value: Any) -> bool:
  """Accept real booleans and the usual boolean strings; reject anything else."""
  if value is None:
    return False
  if isinstance(value, bool):
    return value
  if isinstance(value, str):
    normalized = value.strip().lower()
    if normalized in _TRUE_FLAGS:
      return True
    if normalized in _FALSE_FLAGS:
      return False
  raise ValueError(f"{name} must be a boolean.")


@dataclass(frozen=True)
class GenerationOptions:
  """Per-request generation switches."""

  model: str = "auto"
  include_quality_analysis: bool = False
  enable_cross_validation: bool = False

  @classmethod
  def from_payload(cls, payload: Mapping[str, Any] | None) -> GenerationOptions:
    if not payload:
      return cls()
    model = payload.get("model") or "auto"
    include_quality = _parse_flag("includeQualityAnalysis", payload.get("include_quality_analysis", payload.get("includeQualityAnalysis")))
    cross_validation = _parse_flag("enableCrossValidation", payload.get("enable_cross_validation", payload.get("enableCrossValidation")))
    return cls(model=str(model), include_quality_analysis=include_quality, enable_cross_validation=cross_validation)

  def as_dict(self) -> dict[str, Any]:
    return {"model": self.model, "include_quality_analysis": self.include_quality_analysis, "enable_cross_validation": self.enable_cross_validation}


@dataclass
class UnitOutcome:
  """Result of one (framework, template) unit of work."""

  template_id: str
  title: str
  framework: str
  status: UnitStatus
  provider_used: str
  document_id: str | None = None
  error: str | None = None
  quality_score: int | None = None

  def as_dict(self) -> dict[str, Any]:
    return {
      "template_id": self.template_id,
      "title": self.title,
      "framework": self.framework,
      "status": self.status,
      "provider_used": self.provider_used,
      "document_id": self.document_id,
      "error": self.error,
      "quality_score": self.quality_score,
    }

  @classmethod
  def from_dict(cls, payload: Mapping[str, Any]) -> UnitOutcome:
    return cls(
      template_id=str(payload["template_id"]),
      title=str(payload["title"]),
      framework=str(payload["framework"]),
      status=payload["status"],
      provider_used=str(payload["provider_used"]),
      document_id=payload.get("document_id"),
      error=payload.get("error"),
      quality_score=payload.get("quality_score"),
    )


@dataclass
class GenerationJob:
  """Represents a background document generation job."""

  job_id: str
  company_profile_id: str
  frameworks: list[str]
  status: JobStatus
  total_documents: int
  created_at: str
  updated_at: str
  progress: int = 0
  documents_generated: int = 0
  error_message: str | None = None
  completed_at: str | None = None
  user_id: str | None = None
  options: dict[str, Any] = field(default_factory=dict)
  current_document: str | None = None
  units: list[UnitOutcome] = field(default_factory=list)

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class JobHandle:
  """Immediate acknowledgment returned when a job is accepted."""

  job_id: str
  total_documents: int


@dataclass(frozen=True)
class JobRequest:
  """Job description placed on the work queue."""

  job_id: str
  company_profile_id: str
  frameworks: tuple[str, ...]
  options: GenerationOptions
  company_profile: dict[str, Any] = field(default_factory=dict)
  additional_context: str | None = None
  user_id: str | None = None
  request_id: str | None = None
  ip_address: str | None = None


@dataclass
class DocumentRecord:
  """Persisted generated document, or a sentinel record for a blocked or failed unit."""

  document_id: str
  company_profile_id: str
  job_id: str
  framework: str
  template_id: str
  title: str
  category: str
  document_type: str
  content: str
  status: DocumentStatus
  provider_used: str
  created_at: str
  model: str | None = None
  quality_score: int | None = None
  quality_details: dict[str, Any] | None = None
  created_by: str | None = None
  sequence: int = 0
