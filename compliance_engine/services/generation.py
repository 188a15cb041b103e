"""Generation Job Manager and the wiring that assembles the engine."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from compliance_engine.ai.circuit_breaker import BreakerConfig, BreakerRegistry, Clock
from compliance_engine.ai.errors import JobQueueFullError, RateLimitExceededError
from compliance_engine.ai.executor import CircuitBreakerExecutor
from compliance_engine.ai.guardrails import GuardrailsChecker
from compliance_engine.ai.model_selection import ProviderId, fallback_chain, parse_provider
from compliance_engine.ai.providers.base import Provider
from compliance_engine.ai.quality import QualityScorer
from compliance_engine.ai.router import build_providers
from compliance_engine.config import Settings
from compliance_engine.jobs.dispatch import BackgroundTaskSet, JobSupervisor
from compliance_engine.jobs.models import DocumentRecord, GenerationJob, GenerationOptions, JobHandle, JobRequest, utc_timestamp
from compliance_engine.jobs.templates import TemplateCatalog
from compliance_engine.jobs.worker import GenerationJobRunner, RunnerConfig
from compliance_engine.storage.audit_repo import AuditSink
from compliance_engine.storage.documents_repo import DocumentStore
from compliance_engine.storage.jobs_repo import JobsRepository
from compliance_engine.utils.ids import generate_job_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
  """Outcome of the caller's rate-limit policy, passed in rather than computed here."""

  allowed: bool = True
  retry_after_seconds: int | None = None


class GenerationJobManager:
  """Accept generation requests and expose job state to pollers."""

  def __init__(self, *, jobs_repo: JobsRepository, document_store: DocumentStore, audit_sink: AuditSink, catalog: TemplateCatalog, executor: CircuitBreakerExecutor, supervisor: JobSupervisor, background: BackgroundTaskSet) -> None:
    self.jobs_repo = jobs_repo
    self.document_store = document_store
    self.audit_sink = audit_sink
    self.catalog = catalog
    self.executor = executor
    self.supervisor = supervisor
    self.background = background

  async def start_generation(
    self,
    company_profile_id: str,
    frameworks: Sequence[str],
    options: GenerationOptions | Mapping[str, Any] | None = None,
    *,
    company_profile: Mapping[str, Any] | None = None,
    additional_context: str | None = None,
    user_id: str | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
    rate_limit: RateLimitDecision | None = None,
  ) -> JobHandle:
    """Create a queued job and return before any provider is contacted."""
    if rate_limit is not None and not rate_limit.allowed:
      raise RateLimitExceededError(rate_limit.retry_after_seconds)

    if not company_profile_id or not company_profile_id.strip():
      raise ValueError("companyProfileId is required.")
    if not frameworks:
      raise ValueError("At least one framework is required.")

    resolved_options = options if isinstance(options, GenerationOptions) else GenerationOptions.from_payload(options)
    # Reject unknown model names up front so the runner never sees them.
    parse_provider(resolved_options.model)

    # Canonicalize and de-duplicate while preserving request order.
    canonical: list[str] = []
    for framework in frameworks:
      key = self.catalog.canonical(framework)
      if key not in canonical:
        canonical.append(key)
    total_documents = self.catalog.count(canonical)

    job_id = generate_job_id()
    timestamp = utc_timestamp()
    record = GenerationJob(
      job_id=job_id,
      company_profile_id=company_profile_id,
      frameworks=canonical,
      status="queued",
      total_documents=total_documents,
      created_at=timestamp,
      updated_at=timestamp,
      user_id=user_id,
      options=resolved_options.as_dict(),
    )
    await self.jobs_repo.create_job(record)

    request = JobRequest(
      job_id=job_id,
      company_profile_id=company_profile_id,
      frameworks=tuple(canonical),
      options=resolved_options,
      company_profile=dict(company_profile or {}),
      additional_context=additional_context,
      user_id=user_id,
      request_id=request_id,
      ip_address=ip_address,
    )
    try:
      self.supervisor.submit(request)
    except JobQueueFullError:
      await self.jobs_repo.update_job(job_id, status="failed", error_message="Generation queue is full.", completed_at=utc_timestamp())
      raise

    logger.info("Queued job %s for profile %s: %d documents", job_id, company_profile_id, total_documents)
    return JobHandle(job_id=job_id, total_documents=total_documents)

  async def get_job(self, job_id: str) -> GenerationJob | None:
    return await self.jobs_repo.get_job(job_id)

  async def list_documents(self, job_id: str) -> list[DocumentRecord]:
    return await self.document_store.list_for_job(job_id)

  async def wait_for_job(self, job_id: str, timeout: float | None = None, *, include_scoring: bool = False) -> GenerationJob | None:
    """Wait for the job's terminal record, optionally also for pending quality scores."""
    record = await self.supervisor.wait_for_job(job_id, timeout=timeout)
    if include_scoring:
      await self.background.drain()
    return record

  def provider_status(self) -> dict[str, dict[str, Any]]:
    return self.executor.registry.stats()

  async def reset_provider(self, provider: str) -> None:
    """Force a provider's breaker closed; raises KeyError for unknown providers."""
    await self.executor.registry.reset(provider)
    logger.warning("Circuit breaker for %s reset manually", provider)

  def start(self) -> None:
    self.supervisor.start()

  async def shutdown(self) -> None:
    """Stop workers, failing interrupted jobs, then cancel outstanding scoring tasks."""
    await self.supervisor.stop()
    pending = len(self.background)
    if pending:
      logger.info("Cancelling %d pending quality scoring task(s)", pending)
    await self.background.cancel_all()


def build_generation_manager(
  settings: Settings,
  *,
  providers: Mapping[str, Provider] | None = None,
  jobs_repo: JobsRepository,
  document_store: DocumentStore,
  audit_sink: AuditSink,
  catalog: TemplateCatalog | None = None,
  clock: Clock | None = None,
) -> GenerationJobManager:
  """Assemble the engine from settings and injected collaborators."""
  provider_map = dict(providers) if providers is not None else build_providers(settings)
  breaker_config = BreakerConfig(failure_threshold=settings.breaker_failure_threshold, cooldown_seconds=settings.breaker_cooldown_seconds)
  registry = BreakerRegistry(breaker_config, clock=clock) if clock is not None else BreakerRegistry(breaker_config)
  executor = CircuitBreakerExecutor(provider_map, registry, timeout_seconds=settings.provider_timeout_seconds)

  guardrails = GuardrailsChecker(audit_sink, block_threshold=settings.guardrail_block_threshold, max_content_chars=settings.guardrail_max_content_chars)
  quality_chain = [provider.value for provider in fallback_chain(ProviderId(settings.quality_provider))]
  scorer = QualityScorer(executor, quality_chain)
  template_catalog = catalog or TemplateCatalog()
  background = BackgroundTaskSet()

  runner = GenerationJobRunner(
    jobs_repo=jobs_repo,
    document_store=document_store,
    guardrails=guardrails,
    executor=executor,
    quality_scorer=scorer,
    catalog=template_catalog,
    background=background,
    config=RunnerConfig(max_output_tokens=settings.max_output_tokens, unit_delay_seconds=settings.unit_delay_seconds, cross_validation_threshold=settings.cross_validation_threshold),
  )
  supervisor = JobSupervisor(runner.run, jobs_repo, workers=settings.job_workers, queue_size=settings.job_queue_size)
  return GenerationJobManager(jobs_repo=jobs_repo, document_store=document_store, audit_sink=audit_sink, catalog=template_catalog, executor=executor, supervisor=supervisor, background=background)
