"""Model-assisted quality scoring for generated documents."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from compliance_engine.ai.executor import CircuitBreakerExecutor
from compliance_engine.ai.json_parser import parse_json_with_fallback
from compliance_engine.ai.prompts import build_quality_request

logger = logging.getLogger(__name__)

_SCORE_RE = re.compile(r"(?:overall\s*score|score)\D{0,12}(\d{1,3})(?:\s*/\s*100)?", re.IGNORECASE)
_FRACTION_RE = re.compile(r"\b(\d{1,3})\s*/\s*100\b")


class QualityScoreParseError(ValueError):
  """Scorer output contained no usable score."""


@dataclass(frozen=True)
class QualityMetric:
  name: str
  score: int
  feedback: str | None = None


@dataclass(frozen=True)
class QualityScore:
  """Scored assessment of one document."""

  overall_score: int
  grade: str
  metrics: list[QualityMetric] = field(default_factory=list)
  strengths: list[str] = field(default_factory=list)
  weaknesses: list[str] = field(default_factory=list)
  recommendations: list[str] = field(default_factory=list)
  provider_used: str | None = None

  def as_dict(self) -> dict[str, Any]:
    return {
      "overallScore": self.overall_score,
      "grade": self.grade,
      "metrics": [{"name": metric.name, "score": metric.score, "feedback": metric.feedback} for metric in self.metrics],
      "strengths": list(self.strengths),
      "weaknesses": list(self.weaknesses),
      "recommendations": list(self.recommendations),
      "providerUsed": self.provider_used,
    }


def grade_for(score: int) -> str:
  """Letter grade for a 0-100 score."""
  if score >= 90:
    return "A"
  if score >= 80:
    return "B"
  if score >= 70:
    return "C"
  if score >= 60:
    return "D"
  return "F"


def _clamp_score(value: Any) -> int:
  score = int(round(float(value)))
  return max(0, min(100, score))


def _string_list(value: Any) -> list[str]:
  if not isinstance(value, list):
    return []
  return [str(item).strip() for item in value if str(item).strip()]


def _parse_metrics(value: Any) -> list[QualityMetric]:
  metrics: list[QualityMetric] = []
  if not isinstance(value, list):
    return metrics
  for item in value:
    if not isinstance(item, dict) or "name" not in item or "score" not in item:
      continue
    try:
      metrics.append(QualityMetric(name=str(item["name"]), score=_clamp_score(item["score"]), feedback=item.get("feedback")))
    except (TypeError, ValueError):
      continue
  return metrics


def parse_quality_response(raw: str) -> QualityScore:
  """Parse scorer output, falling back to a score mentioned in prose."""
  try:
    payload = parse_json_with_fallback(raw)
  except json.JSONDecodeError:
    payload = None

  if isinstance(payload, dict):
    raw_score = payload.get("overallScore", payload.get("overall_score", payload.get("score")))
    if raw_score is not None:
      try:
        score = _clamp_score(raw_score)
      except (TypeError, ValueError) as exc:
        raise QualityScoreParseError(f"Non-numeric quality score: {raw_score!r}") from exc
      suggestions = payload.get("recommendations", payload.get("suggestions"))
      return QualityScore(overall_score=score, grade=grade_for(score), metrics=_parse_metrics(payload.get("metrics")), strengths=_string_list(payload.get("strengths")), weaknesses=_string_list(payload.get("weaknesses")), recommendations=_string_list(suggestions))

  match = _SCORE_RE.search(raw) or _FRACTION_RE.search(raw)
  if match is None:
    raise QualityScoreParseError("Quality response contained no score.")
  score = _clamp_score(match.group(1))
  return QualityScore(overall_score=score, grade=grade_for(score))


class QualityScorer:
  """Score documents through the executor's fallback chain."""

  def __init__(self, executor: CircuitBreakerExecutor, chain: Sequence[str]) -> None:
    self._executor = executor
    self._chain = list(chain)

  async def score(self, content: str, title: str, framework: str, document_type: str) -> QualityScore:
    """Return a quality assessment; raises when no provider produced a parseable score."""
    request = build_quality_request(content=content, title=title, framework=framework, document_type=document_type)
    result = await self._executor.generate(request, self._chain)
    score = parse_quality_response(result.content)
    logger.debug("Scored '%s' (%s) at %d via %s", title, framework, score.overall_score, result.provider_used)
    return QualityScore(overall_score=score.overall_score, grade=score.grade, metrics=score.metrics, strengths=score.strengths, weaknesses=score.weaknesses, recommendations=score.recommendations, provider_used=result.provider_used)
