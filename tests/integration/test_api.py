from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import pytest
from conftest import EngineHarness, FakeProvider, build_harness, make_providers

# Ensure required settings are available before importing the app.
os.environ.setdefault("COMPLIANCE_ALLOWED_ORIGINS", "http://localhost:5173")

from compliance_engine.main import create_app  # noqa: E402

PAYLOAD = {
  "companyProfileId": "profile-1",
  "frameworks": ["SOC2"],
  "options": {"model": "auto", "includeQualityAnalysis": False},
  "companyProfile": {"company_name": "Acme Health", "industry": "Healthcare"},
}


@asynccontextmanager
async def _client(harness: EngineHarness) -> AsyncIterator[httpx.AsyncClient]:
  # ASGITransport skips the lifespan, so the manager is wired by hand.
  app = create_app()
  app.state.generation_manager = harness.manager
  harness.manager.start()
  transport = httpx.ASGITransport(app=app)
  try:
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
      yield client
  finally:
    await harness.manager.shutdown()


@pytest.mark.anyio
async def test_create_job_returns_202_and_status_is_pollable() -> None:
  harness = build_harness()
  async with _client(harness) as client:
    response = await client.post("/v1/generation-jobs", json=PAYLOAD, headers={"X-User-Id": "user-7"})

    assert response.status_code == 202
    body = response.json()
    assert body["estimatedDocuments"] == 3
    job_id = body["jobId"]

    await harness.manager.wait_for_job(job_id, timeout=5)
    status_response = await client.get(f"/v1/generation-jobs/{job_id}")

  assert status_response.status_code == 200
  status = status_response.json()
  assert status["jobId"] == job_id
  assert status["status"] == "completed"
  assert status["progress"] == 100
  assert status["documentsGenerated"] == 3
  assert status["totalDocuments"] == 3
  assert [unit["providerUsed"] for unit in status["units"]] == ["anthropic", "anthropic", "openai"]


@pytest.mark.anyio
async def test_documents_endpoint_lists_documents_in_order() -> None:
  harness = build_harness()
  async with _client(harness) as client:
    created = (await client.post("/v1/generation-jobs", json=PAYLOAD)).json()
    await harness.manager.wait_for_job(created["jobId"], timeout=5)
    response = await client.get(f"/v1/generation-jobs/{created['jobId']}/documents")

  assert response.status_code == 200
  documents = response.json()["documents"]
  assert [document["templateId"] for document in documents] == ["soc2-001", "soc2-002", "soc2-003"]
  assert documents[0]["title"] == "Security Controls Framework"
  assert documents[0]["content"].startswith("# Security Controls Framework")


@pytest.mark.anyio
async def test_unknown_job_returns_404() -> None:
  async with _client(build_harness()) as client:
    status_response = await client.get("/v1/generation-jobs/job-missing")
    documents_response = await client.get("/v1/generation-jobs/job-missing/documents")

  assert status_response.status_code == 404
  assert status_response.json()["detail"] == "Generation job not found"
  assert documents_response.status_code == 404


@pytest.mark.anyio
async def test_denied_rate_limit_returns_429_without_creating_a_job() -> None:
  harness = build_harness()
  async with _client(harness) as client:
    response = await client.post("/v1/generation-jobs", json=PAYLOAD, headers={"X-RateLimit-Decision": "deny", "X-RateLimit-Retry-After": "120"})

  assert response.status_code == 429
  assert response.headers["retry-after"] == "120"
  assert await harness.jobs_repo.list_active() == []


@pytest.mark.anyio
async def test_unknown_framework_returns_400() -> None:
  async with _client(build_harness()) as client:
    response = await client.post("/v1/generation-jobs", json={**PAYLOAD, "frameworks": ["HIPAA"]})

  assert response.status_code == 400
  assert "HIPAA" in response.json()["detail"]


@pytest.mark.anyio
async def test_unsupported_model_returns_400() -> None:
  async with _client(build_harness()) as client:
    response = await client.post("/v1/generation-jobs", json={**PAYLOAD, "options": {"model": "llama"}})

  assert response.status_code == 400
  assert response.json()["detail"] == "Unsupported model 'llama'."


@pytest.mark.anyio
async def test_invalid_payload_returns_sanitized_422() -> None:
  async with _client(build_harness()) as client:
    response = await client.post("/v1/generation-jobs", json={"companyProfileId": "profile-1", "frameworks": [], "additionalContext": "secret plans"})

  assert response.status_code == 422
  body = response.json()
  assert body["requestId"]
  assert all("input" not in error for error in body["detail"])
  assert "secret plans" not in response.text


@pytest.mark.anyio
async def test_provider_status_and_reset() -> None:
  providers = make_providers(anthropic=FakeProvider("anthropic", error=RuntimeError("overloaded")))
  harness = build_harness(providers=providers, breaker_failure_threshold=1)
  async with _client(harness) as client:
    created = (await client.post("/v1/generation-jobs", json=PAYLOAD)).json()
    await harness.manager.wait_for_job(created["jobId"], timeout=5)

    status_response = await client.get("/v1/providers/status")
    reset_response = await client.post("/v1/providers/anthropic/reset")
    missing_response = await client.post("/v1/providers/mistral/reset")

  assert status_response.status_code == 200
  by_name = {entry["provider"]: entry for entry in status_response.json()["providers"]}
  assert set(by_name) == {"anthropic", "openai", "gemini"}
  assert by_name["anthropic"]["state"] == "open"
  assert by_name["anthropic"]["failureThreshold"] == 1
  assert by_name["openai"]["state"] == "closed"

  assert reset_response.status_code == 200
  assert reset_response.json()["state"] == "closed"
  assert reset_response.json()["consecutiveFailures"] == 0
  assert missing_response.status_code == 404


@pytest.mark.anyio
async def test_health_and_request_id_headers() -> None:
  async with _client(build_harness()) as client:
    response = await client.get("/health", headers={"X-Request-Id": "req-12345678"})
    generated = await client.get("/health", headers={"X-Request-Id": "bad id!"})

  assert response.json() == {"status": "ok", "version": "0.1.0"}
  assert response.headers["x-request-id"] == "req-12345678"
  assert response.headers["x-content-type-options"] == "nosniff"
  assert generated.headers["x-request-id"] != "bad id!"


@pytest.mark.anyio
async def test_missing_manager_returns_503() -> None:
  app = create_app()
  transport = httpx.ASGITransport(app=app)
  async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
    response = await client.get("/v1/providers/status")

  assert response.status_code == 503
  assert response.json()["detail"] == "Internal Server Error"
