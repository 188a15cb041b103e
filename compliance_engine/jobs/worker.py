"""Per-job runner that drives framework and template generation units."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from compliance_engine.ai.errors import AllProvidersExhaustedError, GuardrailBlockedError, PersistenceFailureError, describe_error
from compliance_engine.ai.executor import CircuitBreakerExecutor, GenerationResult
from compliance_engine.ai.guardrails import GuardrailContext, GuardrailsChecker, sanitize_text
from compliance_engine.ai.model_selection import fallback_chain, select_model
from compliance_engine.ai.prompts import build_document_request, format_company_profile
from compliance_engine.ai.providers.base import CompletionRequest
from compliance_engine.ai.quality import QualityScore, QualityScorer
from compliance_engine.jobs.dispatch import BackgroundTaskSet
from compliance_engine.jobs.models import BLOCKED_PROVIDER, FAILED_PROVIDER, DocumentRecord, GenerationJob, JobRequest, UnitOutcome, utc_timestamp
from compliance_engine.jobs.progress import JobProgressTracker
from compliance_engine.jobs.templates import DocumentTemplate, TemplateCatalog
from compliance_engine.storage.documents_repo import DocumentStore
from compliance_engine.storage.jobs_repo import JobsRepository
from compliance_engine.utils.ids import generate_document_id, generate_request_id


@dataclass(frozen=True)
class RunnerConfig:
  """Tunables applied to every job."""

  max_output_tokens: int = 4000
  unit_delay_seconds: float = 0.0
  cross_validation_threshold: int = 80


@dataclass(frozen=True)
class _Unit:
  sequence: int
  framework: str
  template: DocumentTemplate


class GenerationJobRunner:
  """Run one job to completion or failure, strictly in framework then template order."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    document_store: DocumentStore,
    guardrails: GuardrailsChecker,
    executor: CircuitBreakerExecutor,
    quality_scorer: QualityScorer,
    catalog: TemplateCatalog,
    background: BackgroundTaskSet,
    config: RunnerConfig | None = None,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._documents = document_store
    self._guardrails = guardrails
    self._executor = executor
    self._quality = quality_scorer
    self._catalog = catalog
    self._background = background
    self._config = config or RunnerConfig()
    self._logger = logging.getLogger(__name__)

  async def run(self, request: JobRequest) -> GenerationJob | None:
    """Generate every unit of the job and record the terminal status."""
    units = self._plan_units(request)
    tracker = JobProgressTracker(job_id=request.job_id, jobs_repo=self._jobs_repo, total_documents=len(units))
    await tracker.start()
    self._logger.info("Job %s started: %d documents across %s", request.job_id, len(units), ",".join(request.frameworks))

    profile, profile_block = await self._screen_profile(request)

    try:
      for unit in units:
        # Space out provider traffic between consecutive documents.
        if unit.sequence > 0 and self._config.unit_delay_seconds > 0:
          await asyncio.sleep(self._config.unit_delay_seconds)

        await tracker.unit_started(unit.template.title)
        outcome = await self._run_unit(request, unit, profile, profile_block)
        await tracker.unit_finished(outcome)
    except PersistenceFailureError as exc:
      self._logger.error("Job %s failed while persisting: %s", request.job_id, exc)
      return await tracker.fail(str(exc))

    failed_units = [outcome for outcome in tracker.units if outcome.status == "failed"]
    generated_units = [outcome for outcome in tracker.units if outcome.status == "generated"]
    if failed_units and len(failed_units) == len(tracker.units):
      message = f"All {len(failed_units)} document(s) failed: {failed_units[0].error or 'no provider available'}"
      self._logger.error("Job %s failed: %s", request.job_id, message)
      return await tracker.fail(message)

    self._logger.info("Job %s completed: %d generated, %d failed, %d blocked", request.job_id, len(generated_units), len(failed_units), len(tracker.units) - len(generated_units) - len(failed_units))
    return await tracker.complete()

  def _plan_units(self, request: JobRequest) -> list[_Unit]:
    units: list[_Unit] = []
    for framework in request.frameworks:
      canonical = self._catalog.canonical(framework)
      for template in self._catalog.templates_for(canonical):
        units.append(_Unit(sequence=len(units), framework=canonical, template=template))
    return units

  async def _run_unit(self, request: JobRequest, unit: _Unit, profile: Mapping[str, Any], profile_block: GuardrailBlockedError | None) -> UnitOutcome:
    template = unit.template
    if profile_block is not None:
      return await self._record_blocked(request, unit, profile_block)

    primary = select_model(template.resolved_category, unit.framework, request.options.model)
    chain = [provider.value for provider in fallback_chain(primary)]

    try:
      user_context = await self._screen(request, _user_context(request.additional_context, template.notes), primary.value)
    except GuardrailBlockedError as exc:
      return await self._record_blocked(request, unit, exc)

    document_request = build_document_request(
      title=template.title,
      category=template.category,
      framework=template.framework,
      company_profile=profile,
      additional_context=user_context,
      max_tokens=self._config.max_output_tokens,
    )

    try:
      result = await self._executor.generate(document_request, chain)
    except AllProvidersExhaustedError as exc:
      return await self._record_failed(request, unit, exc)

    quality: QualityScore | None = None
    if request.options.enable_cross_validation:
      result, quality = await self._cross_validate(request, unit, chain, document_request, result)

    record = await self._persist(
      DocumentRecord(
        document_id=generate_document_id(),
        company_profile_id=request.company_profile_id,
        job_id=request.job_id,
        framework=template.framework,
        template_id=template.template_id,
        title=template.title,
        category=template.category,
        document_type=template.document_type,
        content=result.content,
        status="complete",
        provider_used=result.provider_used,
        model=result.model,
        quality_score=quality.overall_score if quality else None,
        quality_details=quality.as_dict() if quality else None,
        created_by=request.user_id,
        created_at=utc_timestamp(),
        sequence=unit.sequence,
      )
    )

    if request.options.include_quality_analysis and quality is None:
      # Scoring runs after persistence and never holds up the job.
      self._background.spawn(self._score_document(record), name=f"quality-{record.document_id}")

    return UnitOutcome(template_id=template.template_id, title=template.title, framework=template.framework, status="generated", provider_used=result.provider_used, document_id=record.document_id, quality_score=record.quality_score)

  async def _screen(self, request: JobRequest, user_context: str | None, provider: str | None) -> str | None:
    """Return the screened user context, raising GuardrailBlockedError when blocked."""
    if not user_context:
      return None
    context = GuardrailContext(request_id=request.request_id or generate_request_id(), user_id=request.user_id, provider=provider, model=request.options.model, ip_address=request.ip_address, action="generate_document", entity_type="generation_job", entity_id=request.job_id)
    screening = await self._guardrails.check(user_context, None, context)
    if not screening.allowed:
      raise GuardrailBlockedError(f"Blocked by guardrails (severity {screening.severity})", severity=screening.severity, categories=screening.categories)
    return screening.effective_content(user_context)

  async def _screen_profile(self, request: JobRequest) -> tuple[Mapping[str, Any], GuardrailBlockedError | None]:
    """Screen the rendered company profile once for the whole job."""
    profile = request.company_profile
    if not profile:
      return profile, None
    rendered = format_company_profile(profile)
    try:
      screened = await self._screen(request, rendered, None)
    except GuardrailBlockedError as exc:
      self._logger.warning("Job %s: company profile blocked by guardrails", request.job_id)
      return profile, exc
    if screened == rendered:
      return profile, None
    return {key: _sanitize_profile_value(value) for key, value in profile.items()}, None

  async def _cross_validate(self, request: JobRequest, unit: _Unit, chain: list[str], document_request: CompletionRequest, result: GenerationResult) -> tuple[GenerationResult, QualityScore | None]:
    """Regenerate with the next provider when the first draft scores below threshold."""
    template = unit.template
    quality = await self._try_score(result.content, template.title, template.framework, template.document_type)
    if quality is None or quality.overall_score >= self._config.cross_validation_threshold:
      return result, quality

    alternates = [provider for provider in chain if provider != result.provider_used]
    if not alternates:
      return result, quality

    self._logger.info("Job %s: '%s' scored %d via %s; cross-validating", request.job_id, template.title, quality.overall_score, result.provider_used)
    try:
      alternative = await self._executor.generate(document_request, alternates)
    except AllProvidersExhaustedError as exc:
      self._logger.warning("Job %s: cross-validation for '%s' found no provider: %s", request.job_id, template.title, exc)
      return result, quality

    alternative_quality = await self._try_score(alternative.content, template.title, template.framework, template.document_type)
    if alternative_quality is not None and alternative_quality.overall_score > quality.overall_score:
      alternative.attempts = [*result.attempts, *alternative.attempts]
      return alternative, alternative_quality
    return result, quality

  async def _try_score(self, content: str, title: str, framework: str, document_type: str) -> QualityScore | None:
    try:
      return await self._quality.score(content, title, framework, document_type)
    except Exception as exc:  # noqa: BLE001
      self._logger.warning("Quality scoring failed for '%s': %s", title, describe_error(exc))
      return None

  async def _score_document(self, record: DocumentRecord) -> None:
    quality = await self._try_score(record.content, record.title, record.framework, record.document_type)
    if quality is None:
      return
    try:
      await self._documents.update_quality(record.document_id, quality_score=quality.overall_score, quality_details=quality.as_dict())
    except Exception as exc:  # noqa: BLE001
      self._logger.warning("Failed to store quality score for document %s: %s", record.document_id, describe_error(exc))

  async def _record_blocked(self, request: JobRequest, unit: _Unit, exc: GuardrailBlockedError) -> UnitOutcome:
    template = unit.template
    reason = str(exc)
    record = await self._persist(self._sentinel_document(request, unit, status="blocked", provider_used=BLOCKED_PROVIDER, content=reason))
    self._logger.warning("Job %s: '%s' blocked by guardrails", request.job_id, template.title)
    return UnitOutcome(template_id=template.template_id, title=template.title, framework=template.framework, status="blocked", provider_used=BLOCKED_PROVIDER, document_id=record.document_id, error=reason)

  async def _record_failed(self, request: JobRequest, unit: _Unit, exc: AllProvidersExhaustedError) -> UnitOutcome:
    template = unit.template
    reason = f"Error generating {template.title}: {exc}"
    record = await self._persist(self._sentinel_document(request, unit, status="failed", provider_used=FAILED_PROVIDER, content=reason))
    self._logger.error("Job %s: '%s' failed: %s", request.job_id, template.title, exc)
    return UnitOutcome(template_id=template.template_id, title=template.title, framework=template.framework, status="failed", provider_used=FAILED_PROVIDER, document_id=record.document_id, error=str(exc))

  def _sentinel_document(self, request: JobRequest, unit: _Unit, *, status: str, provider_used: str, content: str) -> DocumentRecord:
    template = unit.template
    return DocumentRecord(
      document_id=generate_document_id(),
      company_profile_id=request.company_profile_id,
      job_id=request.job_id,
      framework=template.framework,
      template_id=template.template_id,
      title=template.title,
      category=template.category,
      document_type=template.document_type,
      content=content,
      status=status,
      provider_used=provider_used,
      created_by=request.user_id,
      created_at=utc_timestamp(),
      sequence=unit.sequence,
    )

  async def _persist(self, record: DocumentRecord) -> DocumentRecord:
    try:
      return await self._documents.create_document(record)
    except Exception as exc:
      raise PersistenceFailureError(f"Failed to persist document '{record.title}': {describe_error(exc)}") from exc


def _user_context(additional_context: str | None, notes: str | None) -> str | None:
  parts = [part.strip() for part in (additional_context, notes) if part and part.strip()]
  return "\n\n".join(parts) or None


def _sanitize_profile_value(value: Any) -> Any:
  if isinstance(value, str):
    return sanitize_text(value)
  if isinstance(value, (list, tuple)):
    return [_sanitize_profile_value(item) for item in value]
  return value
