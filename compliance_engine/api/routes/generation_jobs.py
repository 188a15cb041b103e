import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from compliance_engine.ai.errors import UnknownFrameworkError
from compliance_engine.api.deps import get_generation_manager, get_rate_limit_decision
from compliance_engine.api.models import GeneratedDocumentResponse, GeneratedDocumentsResponse, GenerationJobCreateResponse, GenerationJobRequest, GenerationJobStatusResponse
from compliance_engine.core.middleware import _redact_sensitive_keys
from compliance_engine.services.generation import GenerationJobManager, RateLimitDecision

router = APIRouter()
logger = logging.getLogger("compliance_engine.api.routes.generation_jobs")


@router.post("", response_model=GenerationJobCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_generation_job(  # noqa: B008
  payload: GenerationJobRequest,
  request: Request,
  x_user_id: str | None = Header(default=None, alias="X-User-Id"),  # noqa: B008
  rate_limit: RateLimitDecision = Depends(get_rate_limit_decision),  # noqa: B008
  manager: GenerationJobManager = Depends(get_generation_manager),  # noqa: B008
) -> GenerationJobCreateResponse:
  """Queue generation of every template for the requested frameworks."""
  logger.debug("Generation request frameworks=%s options=%s profile=%s", payload.frameworks, payload.options.model_dump(), _redact_sensitive_keys(payload.company_profile or {}))
  try:
    handle = await manager.start_generation(
      payload.company_profile_id,
      payload.frameworks,
      payload.options.to_options(),
      company_profile=payload.company_profile,
      additional_context=payload.additional_context,
      user_id=x_user_id,
      request_id=getattr(request.state, "request_id", None),
      ip_address=getattr(request.state, "client_ip", None),
      rate_limit=rate_limit,
    )
  except UnknownFrameworkError:
    raise
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
  return GenerationJobCreateResponse(job_id=handle.job_id, estimated_documents=handle.total_documents)


@router.get("/{job_id}", response_model=GenerationJobStatusResponse)
async def get_generation_job(job_id: str, manager: GenerationJobManager = Depends(get_generation_manager)) -> GenerationJobStatusResponse:  # noqa: B008
  """Return progress and per-unit outcomes for a job."""
  job = await manager.get_job(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation job not found")
  return GenerationJobStatusResponse.from_job(job)


@router.get("/{job_id}/documents", response_model=GeneratedDocumentsResponse)
async def list_generation_job_documents(job_id: str, manager: GenerationJobManager = Depends(get_generation_manager)) -> GeneratedDocumentsResponse:  # noqa: B008
  """Return the job's persisted documents in template order."""
  job = await manager.get_job(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation job not found")
  documents = await manager.list_documents(job_id)
  return GeneratedDocumentsResponse(job_id=job_id, documents=[GeneratedDocumentResponse.from_record(record) for record in documents])
