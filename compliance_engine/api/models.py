from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from compliance_engine.jobs.models import DocumentRecord, GenerationJob, GenerationOptions, JobStatus, UnitOutcome


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so the API accepts frontend-style payloads."""
  parts = string.split("_")
  if not parts:
    return string
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


class _CamelModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore", alias_generator=_to_camel)


class GenerationOptionsPayload(_CamelModel):
  model: StrictStr = Field(default="auto", description="'auto' or a provider/model alias such as 'claude', 'gpt-4', 'gemini'.")
  include_quality_analysis: bool = False
  enable_cross_validation: bool = False

  def to_options(self) -> GenerationOptions:
    return GenerationOptions(model=self.model, include_quality_analysis=self.include_quality_analysis, enable_cross_validation=self.enable_cross_validation)


class GenerationJobRequest(_CamelModel):
  """Request payload for starting a document generation job."""

  company_profile_id: StrictStr = Field(..., min_length=1)
  frameworks: list[StrictStr] = Field(..., min_length=1)
  options: GenerationOptionsPayload = Field(default_factory=GenerationOptionsPayload)
  additional_context: str | None = Field(default=None, max_length=100_000)
  company_profile: dict[str, Any] | None = None

  @field_validator("company_profile_id")
  @classmethod
  def _strip_profile_id(cls, value: str) -> str:
    stripped = value.strip()
    if not stripped:
      raise ValueError("companyProfileId must not be blank")
    return stripped


class GenerationJobCreateResponse(_CamelModel):
  job_id: StrictStr
  estimated_documents: int = Field(ge=0)


class UnitOutcomeResponse(_CamelModel):
  template_id: str
  title: str
  framework: str
  status: str
  provider_used: str
  document_id: str | None = None
  error: str | None = None
  quality_score: int | None = None

  @classmethod
  def from_outcome(cls, outcome: UnitOutcome) -> UnitOutcomeResponse:
    return cls(**outcome.as_dict())


class GenerationJobStatusResponse(_CamelModel):
  """Status payload polled by clients."""

  job_id: str
  status: JobStatus
  progress: int
  documents_generated: int
  total_documents: int
  frameworks: list[str]
  error_message: str | None = None
  current_document: str | None = None
  created_at: str
  updated_at: str
  completed_at: str | None = None
  units: list[UnitOutcomeResponse] = Field(default_factory=list)

  @classmethod
  def from_job(cls, job: GenerationJob) -> GenerationJobStatusResponse:
    return cls(
      job_id=job.job_id,
      status=job.status,
      progress=job.progress,
      documents_generated=job.documents_generated,
      total_documents=job.total_documents,
      frameworks=list(job.frameworks),
      error_message=job.error_message,
      current_document=job.current_document,
      created_at=job.created_at,
      updated_at=job.updated_at,
      completed_at=job.completed_at,
      units=[UnitOutcomeResponse.from_outcome(unit) for unit in job.units],
    )


class GeneratedDocumentResponse(_CamelModel):
  document_id: str
  job_id: str
  company_profile_id: str
  framework: str
  template_id: str
  title: str
  category: str
  document_type: str
  content: str
  status: str
  provider_used: str
  model: str | None = None
  quality_score: int | None = None
  quality_details: dict[str, Any] | None = None
  created_by: str | None = None
  created_at: str

  @classmethod
  def from_record(cls, record: DocumentRecord) -> GeneratedDocumentResponse:
    return cls(
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
      quality_details=record.quality_details,
      created_by=record.created_by,
      created_at=record.created_at,
    )


class GeneratedDocumentsResponse(_CamelModel):
  job_id: str
  documents: list[GeneratedDocumentResponse]


class ProviderStatusResponse(_CamelModel):
  provider: str
  state: str
  consecutive_failures: int
  failure_threshold: int
  cooldown_seconds: float
  seconds_since_last_failure: float | None = None
  total_calls: int
  total_successes: int
  total_failures: int
  total_rejections: int


class ProvidersStatusResponse(_CamelModel):
  providers: list[ProviderStatusResponse]
