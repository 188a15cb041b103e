"""Shared fakes and fixtures for engine tests."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest

from compliance_engine.ai.providers.base import CompletionRequest, Provider, SimpleModelResponse
from compliance_engine.config import Settings
from compliance_engine.jobs.templates import TemplateCatalog
from compliance_engine.services.generation import GenerationJobManager, build_generation_manager
from compliance_engine.storage.audit_repo import InMemoryAuditSink
from compliance_engine.storage.documents_repo import InMemoryDocumentStore
from compliance_engine.storage.jobs_repo import InMemoryJobsRepository

QUALITY_JSON = '{"overallScore": 88, "grade": "B", "metrics": [{"name": "completeness", "score": 90}], "strengths": ["Clear scope"], "weaknesses": [], "recommendations": ["Add review cadence"]}'


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


class FakeProvider(Provider):
  """Scriptable provider that records every request it receives."""

  def __init__(
    self,
    name: str,
    *,
    error: BaseException | None = None,
    delay: float = 0.0,
    quality_json: str = QUALITY_JSON,
    handler: Callable[[CompletionRequest], Any] | None = None,
  ) -> None:
    self.name = name
    self.model = f"{name}-test"
    self.error = error
    self.delay = delay
    self.quality_json = quality_json
    self.handler = handler
    self.calls: list[CompletionRequest] = []

  @property
  def document_calls(self) -> list[CompletionRequest]:
    return [call for call in self.calls if not call.json_output]

  @property
  def quality_calls(self) -> list[CompletionRequest]:
    return [call for call in self.calls if call.json_output]

  async def complete(self, request: CompletionRequest) -> SimpleModelResponse:
    self.calls.append(request)
    if self.delay:
      await asyncio.sleep(self.delay)
    if self.handler is not None:
      return self.handler(request)
    if self.error is not None:
      raise self.error
    if request.json_output:
      return SimpleModelResponse(content=self.quality_json, model=self.model, finish_reason="stop")
    title = request.user_prompt.splitlines()[0]
    return SimpleModelResponse(content=f"# {title}\n\nWritten by {self.name}.", model=self.model, finish_reason="stop")


class ManualClock:
  """Monotonic clock advanced explicitly by tests."""

  def __init__(self, start: float = 1000.0) -> None:
    self.now = start

  def __call__(self) -> float:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += seconds


def make_settings(**overrides: Any) -> Settings:
  base = Settings(
    environment="test",
    allowed_origins=("http://localhost:5173",),
    debug=False,
    log_max_bytes=1_000_000,
    log_backup_count=1,
    log_http_4xx=False,
    pg_dsn=None,
    pg_connect_timeout=5,
    openai_api_key=None,
    openai_model="gpt-4o",
    anthropic_api_key=None,
    anthropic_model="claude-sonnet-4-20250514",
    gemini_api_key=None,
    gemini_model="gemini-2.5-pro",
    max_output_tokens=4000,
    provider_timeout_seconds=5.0,
    breaker_failure_threshold=5,
    breaker_cooldown_seconds=30.0,
    guardrail_block_threshold=7.0,
    guardrail_max_content_chars=50_000,
    job_workers=2,
    job_queue_size=10,
    unit_delay_seconds=0.0,
    quality_provider="anthropic",
    cross_validation_threshold=80,
    dummy_responses=False,
  )
  return dataclasses.replace(base, **overrides)


def make_providers(**overrides: FakeProvider) -> dict[str, FakeProvider]:
  providers = {name: FakeProvider(name) for name in ("anthropic", "openai", "gemini")}
  providers.update(overrides)
  return providers


@dataclasses.dataclass
class EngineHarness:
  manager: GenerationJobManager
  providers: dict[str, FakeProvider]
  jobs_repo: Any
  document_store: Any
  audit_sink: InMemoryAuditSink
  clock: ManualClock


def build_harness(
  *,
  providers: dict[str, FakeProvider] | None = None,
  jobs_repo: Any = None,
  document_store: Any = None,
  catalog: TemplateCatalog | None = None,
  **settings_overrides: Any,
) -> EngineHarness:
  provider_map = providers if providers is not None else make_providers()
  jobs = jobs_repo if jobs_repo is not None else InMemoryJobsRepository()
  documents = document_store if document_store is not None else InMemoryDocumentStore()
  audit = InMemoryAuditSink()
  clock = ManualClock()
  manager = build_generation_manager(make_settings(**settings_overrides), providers=provider_map, jobs_repo=jobs, document_store=documents, audit_sink=audit, catalog=catalog, clock=clock)
  return EngineHarness(manager=manager, providers=provider_map, jobs_repo=jobs, document_store=documents, audit_sink=audit, clock=clock)


@asynccontextmanager
async def running(harness: EngineHarness) -> AsyncIterator[EngineHarness]:
  """Start the worker pool for the duration of a test."""
  harness.manager.start()
  try:
    yield harness
  finally:
    await harness.manager.shutdown()
