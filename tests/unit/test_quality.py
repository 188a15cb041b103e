from __future__ import annotations

import json

import pytest
from conftest import FakeProvider, ManualClock

from compliance_engine.ai.circuit_breaker import BreakerRegistry
from compliance_engine.ai.executor import CircuitBreakerExecutor
from compliance_engine.ai.json_parser import parse_json_with_fallback
from compliance_engine.ai.quality import QualityScorer, QualityScoreParseError, grade_for, parse_quality_response


def test_parse_json_recovers_fenced_payload_with_trailing_comma() -> None:
  raw = 'Here is the review:\n```json\n{"overallScore": 91, "strengths": ["a",],}\n```'
  assert parse_json_with_fallback(raw) == {"overallScore": 91, "strengths": ["a"]}


def test_parse_json_raises_when_no_payload() -> None:
  with pytest.raises(json.JSONDecodeError):
    parse_json_with_fallback("no json here")


def test_parse_quality_json_response() -> None:
  score = parse_quality_response('{"overall_score": 72.6, "metrics": [{"name": "clarity", "score": 80}, {"name": "bad"}], "suggestions": ["Add owners"]}')

  assert score.overall_score == 73
  assert score.grade == "C"
  assert [metric.name for metric in score.metrics] == ["clarity"]
  assert score.recommendations == ["Add owners"]


def test_parse_quality_prose_fallback() -> None:
  assert parse_quality_response("Overall score: 64 out of 100.").overall_score == 64
  assert parse_quality_response("I would rate this 85/100.").overall_score == 85


def test_parse_quality_without_score_raises() -> None:
  with pytest.raises(QualityScoreParseError):
    parse_quality_response("Looks fine to me.")


def test_grade_bands() -> None:
  assert [grade_for(score) for score in (95, 85, 75, 65, 10)] == ["A", "B", "C", "D", "F"]


@pytest.mark.anyio
async def test_scorer_uses_configured_chain() -> None:
  providers = {"anthropic": FakeProvider("anthropic", error=RuntimeError("overloaded")), "openai": FakeProvider("openai")}
  executor = CircuitBreakerExecutor(providers, BreakerRegistry(clock=ManualClock()))
  scorer = QualityScorer(executor, ["anthropic", "openai"])

  score = await scorer.score("# Policy", "Access Control Policy", "SOC2", "policy")

  assert score.overall_score == 88
  assert score.grade == "B"
  assert score.provider_used == "openai"
  assert providers["openai"].quality_calls[0].json_output
