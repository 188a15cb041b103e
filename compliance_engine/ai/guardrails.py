"""Pre-call content screening for generation requests.

The checker scores text for prompt-injection markers, sensitive keywords,
markup, PII and oversized payloads. Scoring is pure and deterministic; only
the audit write of a non-allowed result touches I/O.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Final, Literal

from compliance_engine.storage.audit_repo import AuditEvent, AuditSink

logger = logging.getLogger(__name__)

GuardrailAction = Literal["allowed", "sanitized", "blocked"]
Severity = Literal["low", "medium", "high", "critical"]

INJECTION_MARKERS: Final[tuple[str, ...]] = (
  "ignore previous instructions",
  "disregard",
  "forget all previous",
  "new instructions",
  "system:",
  "admin mode",
  "developer mode",
  "jailbreak",
  "bypass",
)

SENSITIVE_KEYWORDS: Final[tuple[str, ...]] = ("confidential", "secret", "password", "token", "api key", "private key")

PII_PATTERNS: Final[dict[str, re.Pattern[str]]] = {
  "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
  "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
  "credit_card": re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
  "phone": re.compile(r"(?<!\d)(?:\+\d{1,2}\s?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}\b"),
  "ip_address": re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
}

_SCRIPT_RE: Final[re.Pattern[str]] = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_EVENT_HANDLER_RE: Final[re.Pattern[str]] = re.compile(r"(?:alert|onerror|onclick|onload)\s*\(", re.IGNORECASE)
_TAG_RE: Final[re.Pattern[str]] = re.compile(r"<[^>]+>")
_SECRET_ASSIGNMENT_RE: Final[re.Pattern[str]] = re.compile(r"\b(?:password|secret|token|api[_\s]key)\s*[:=]", re.IGNORECASE)

LONG_CONTENT_CHARS: Final[int] = 10_000


@dataclass(frozen=True)
class GuardrailContext:
  """Request metadata attached to audit records."""

  request_id: str
  user_id: str | None = None
  provider: str | None = None
  model: str | None = None
  ip_address: str | None = None
  action: str = "generate_document"
  entity_type: str = "document"
  entity_id: str | None = None


@dataclass(frozen=True)
class GuardrailResult:
  """Outcome of one guardrails check."""

  allowed: bool
  action: GuardrailAction
  severity: Severity
  sanitized_content: str | None = None
  risk_score: float = 0.0
  categories: tuple[str, ...] = ()
  pii_types: tuple[str, ...] = ()

  def effective_content(self, original: str) -> str:
    """Return the text a provider should receive for this result."""
    if self.action == "sanitized" and self.sanitized_content is not None:
      return self.sanitized_content
    return original


@dataclass
class _Findings:
  categories: list[str] = field(default_factory=list)
  pii_types: list[str] = field(default_factory=list)
  score: float = 0.0
  has_markup: bool = False


def severity_for(score: float) -> Severity:
  """Map a 0-10 risk score to a severity label."""
  if score >= 8:
    return "critical"
  if score >= 6:
    return "high"
  if score >= 4:
    return "medium"
  return "low"


def redact_pii(text: str) -> tuple[str, list[str]]:
  """Replace PII matches with ``[REDACTED_<TYPE>]`` markers."""
  detected: list[str] = []
  sanitized = text
  for pii_type, pattern in PII_PATTERNS.items():
    if pattern.search(sanitized):
      detected.append(pii_type)
      sanitized = pattern.sub(f"[REDACTED_{pii_type.upper()}]", sanitized)
  return sanitized, detected


def strip_markup(text: str) -> str:
  """Remove script blocks and HTML tags."""
  return _TAG_RE.sub("", _SCRIPT_RE.sub("", text))


def sanitize_text(text: str) -> str:
  """Apply the sanitizing rewrite: markup stripped, PII redacted."""
  sanitized, _ = redact_pii(strip_markup(text))
  return sanitized


def _scan(text: str) -> _Findings:
  findings = _Findings()
  lowered = text.lower()

  injection_hits = 0
  for marker in INJECTION_MARKERS:
    if marker in lowered:
      findings.categories.append(f"injection_attempt_{marker.rstrip(':').replace(' ', '_')}")
      injection_hits += 1

  if "ignore" in lowered and ("instructions" in lowered or "prompts" in lowered):
    findings.categories.append("prompt_injection")
    findings.score += 8

  findings.score += injection_hits * 4
  if injection_hits:
    findings.score += 4

  for keyword in SENSITIVE_KEYWORDS:
    if keyword in lowered:
      findings.categories.append(f"sensitive_{keyword.replace(' ', '_')}")
      findings.score += 0.5

  if _SECRET_ASSIGNMENT_RE.search(text):
    findings.categories.append("secret_assignment")
    findings.score += 1

  if _SCRIPT_RE.search(text) or (_TAG_RE.search(text) and _EVENT_HANDLER_RE.search(text)):
    findings.categories.append("potential_xss")
    findings.score += 3
    findings.has_markup = True
  elif _TAG_RE.search(text):
    findings.categories.append("html_tags_detected")
    findings.has_markup = True

  for pii_type, pattern in PII_PATTERNS.items():
    if pattern.search(text):
      findings.pii_types.append(pii_type)
      findings.categories.append(f"pii_{pii_type}")

  if len(text) > LONG_CONTENT_CHARS:
    findings.score += 1

  findings.score = min(findings.score, 10.0)
  return findings


class GuardrailsChecker:
  """Screen user-supplied text before it reaches any provider."""

  def __init__(self, audit_sink: AuditSink, *, block_threshold: float = 7.0, max_content_chars: int = 50_000) -> None:
    if not 0 < block_threshold <= 10:
      raise ValueError("block_threshold must be within (0, 10].")
    if max_content_chars <= 0:
      raise ValueError("max_content_chars must be positive.")
    self._audit_sink = audit_sink
    self._block_threshold = block_threshold
    self._max_content_chars = max_content_chars

  def evaluate(self, content: str, prior_turn: str | None = None) -> GuardrailResult:
    """Score content and the optional prior turn without side effects."""
    if len(content) > self._max_content_chars:
      return GuardrailResult(allowed=False, action="blocked", severity="high", risk_score=10.0, categories=("oversized_payload",))

    findings = _scan(content)
    score = findings.score
    categories = list(findings.categories)

    # The prior turn contributes risk but is never rewritten.
    if prior_turn:
      prior = _scan(prior_turn)
      score = max(score, prior.score)
      categories.extend(f"prior_{category}" for category in prior.categories)

    severity = severity_for(score)
    if score >= self._block_threshold:
      return GuardrailResult(allowed=False, action="blocked", severity=severity, risk_score=score, categories=tuple(categories), pii_types=tuple(findings.pii_types))

    if findings.pii_types or findings.has_markup:
      return GuardrailResult(allowed=True, action="sanitized", severity=severity, sanitized_content=sanitize_text(content), risk_score=score, categories=tuple(categories), pii_types=tuple(findings.pii_types))

    return GuardrailResult(allowed=True, action="allowed", severity=severity, risk_score=score, categories=tuple(categories))

  async def check(self, content: str, prior_turn: str | None, context: GuardrailContext) -> GuardrailResult:
    """Evaluate content and audit every non-allowed result."""
    result = self.evaluate(content, prior_turn)
    if result.action == "allowed":
      return result

    if result.action == "blocked":
      logger.warning("Guardrails blocked request_id=%s severity=%s categories=%s", context.request_id, result.severity, ",".join(result.categories))
    else:
      logger.info("Guardrails sanitized request_id=%s pii=%s", context.request_id, ",".join(result.pii_types))

    await self._audit(result, context)
    return result

  async def _audit(self, result: GuardrailResult, context: GuardrailContext) -> None:
    metadata = {
      "blocked": result.action == "blocked",
      "severity": result.severity,
      "provider": context.provider,
      "model": context.model,
      "action_taken": result.action,
      "risk_score": result.risk_score,
      "categories": list(result.categories),
      "request_id": context.request_id,
      "ip_address": context.ip_address,
    }
    event = AuditEvent(action=context.action, entity_type=context.entity_type, entity_id=context.entity_id, user_id=context.user_id, metadata=metadata)
    try:
      await self._audit_sink.record(event)
    except Exception:  # noqa: BLE001
      logger.error("Failed to record guardrails audit event request_id=%s", context.request_id, exc_info=True)
