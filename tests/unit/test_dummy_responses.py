"""Tests for deterministic dummy provider responses."""

from __future__ import annotations

import pytest
from conftest import make_settings

from compliance_engine.ai.providers.base import CompletionRequest
from compliance_engine.ai.quality import parse_quality_response
from compliance_engine.ai.router import build_providers
from compliance_engine.storage.factory import build_storage
from compliance_engine.storage.jobs_repo import InMemoryJobsRepository


@pytest.mark.anyio
async def test_dummy_providers_answer_without_api_keys() -> None:
  providers = build_providers(make_settings(dummy_responses=True))

  assert set(providers) == {"anthropic", "openai", "gemini"}
  document = await providers["openai"].complete(CompletionRequest(system_prompt="sys", user_prompt="Access Control Policy\n\nGenerate it."))
  assert document.content.startswith("# Access Control Policy")
  assert document.model == "gpt-4o-dummy"

  review = await providers["gemini"].complete(CompletionRequest(system_prompt="sys", user_prompt="Assess this", json_output=True))
  assert parse_quality_response(review.content).overall_score == 85


@pytest.mark.anyio
async def test_missing_api_key_surfaces_as_call_failure(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
  provider = build_providers(make_settings())["anthropic"]

  with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
    await provider.complete(CompletionRequest(system_prompt="sys", user_prompt="Policy"))


def test_storage_defaults_to_memory_without_dsn() -> None:
  bundle = build_storage(make_settings(pg_dsn=None))
  assert isinstance(bundle.jobs_repo, InMemoryJobsRepository)
