"""Provider selection for document generation.

Selection is a pure lookup. Template categories are resolved to a
``DocumentCategory`` once, when the template catalog loads, so the dispatch
below never inspects free text.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class ProviderId(str, Enum):
  """Supported model providers."""

  ANTHROPIC = "anthropic"
  OPENAI = "openai"
  GEMINI = "gemini"


class DocumentCategory(str, Enum):
  """Document categories that drive automatic provider selection."""

  POLICY = "policy"
  ANALYSIS = "analysis"
  ASSESSMENT = "assessment"
  STANDARD = "standard"
  FRAMEWORK = "framework"
  TRAINING = "training"
  PROCEDURE = "procedure"
  PLAN = "plan"
  RESPONSE = "response"
  CONTROL = "control"
  REPORT = "report"
  BASELINE = "baseline"
  WORKBOOK = "workbook"
  SYSTEM_SECURITY_PLAN = "system_security_plan"
  OTHER = "other"


AUTO_MODEL: Final[str] = "auto"

DEFAULT_FALLBACK_ORDER: Final[tuple[ProviderId, ...]] = (ProviderId.ANTHROPIC, ProviderId.OPENAI, ProviderId.GEMINI)

CATEGORY_PROVIDERS: Final[dict[DocumentCategory, ProviderId]] = {
  # Structured long-form writing.
  DocumentCategory.POLICY: ProviderId.ANTHROPIC,
  DocumentCategory.ANALYSIS: ProviderId.ANTHROPIC,
  DocumentCategory.ASSESSMENT: ProviderId.ANTHROPIC,
  DocumentCategory.STANDARD: ProviderId.ANTHROPIC,
  DocumentCategory.FRAMEWORK: ProviderId.ANTHROPIC,
  DocumentCategory.TRAINING: ProviderId.ANTHROPIC,
  # Precise technical and procedural content.
  DocumentCategory.PROCEDURE: ProviderId.OPENAI,
  DocumentCategory.PLAN: ProviderId.OPENAI,
  DocumentCategory.RESPONSE: ProviderId.OPENAI,
  DocumentCategory.CONTROL: ProviderId.OPENAI,
  DocumentCategory.REPORT: ProviderId.OPENAI,
  # Very large context windows.
  DocumentCategory.BASELINE: ProviderId.GEMINI,
  DocumentCategory.WORKBOOK: ProviderId.GEMINI,
  DocumentCategory.SYSTEM_SECURITY_PLAN: ProviderId.GEMINI,
}

FRAMEWORK_DEFAULT_PROVIDERS: Final[dict[str, ProviderId]] = {
  "SOC2": ProviderId.ANTHROPIC,
  "ISO27001": ProviderId.ANTHROPIC,
  "FEDRAMP": ProviderId.OPENAI,
  "NIST": ProviderId.OPENAI,
}

# Model names accepted by earlier API versions.
_LEGACY_MODEL_ALIASES: Final[dict[str, ProviderId]] = {
  "claude-sonnet-4": ProviderId.ANTHROPIC,
  "claude": ProviderId.ANTHROPIC,
  "gpt-4": ProviderId.OPENAI,
  "gpt-4o": ProviderId.OPENAI,
  "gpt": ProviderId.OPENAI,
  "gemini-pro": ProviderId.GEMINI,
}

# Keyword order matters: the most specific label wins when a category name carries several.
_CATEGORY_KEYWORDS: Final[tuple[tuple[str, DocumentCategory], ...]] = (
  ("system security plan", DocumentCategory.SYSTEM_SECURITY_PLAN),
  ("ssp", DocumentCategory.SYSTEM_SECURITY_PLAN),
  ("baseline", DocumentCategory.BASELINE),
  ("workbook", DocumentCategory.WORKBOOK),
  ("policy", DocumentCategory.POLICY),
  ("analysis", DocumentCategory.ANALYSIS),
  ("assessment", DocumentCategory.ASSESSMENT),
  ("procedure", DocumentCategory.PROCEDURE),
  ("response", DocumentCategory.RESPONSE),
  ("plan", DocumentCategory.PLAN),
  ("standard", DocumentCategory.STANDARD),
  ("control", DocumentCategory.CONTROL),
  ("framework", DocumentCategory.FRAMEWORK),
  ("training", DocumentCategory.TRAINING),
  ("report", DocumentCategory.REPORT),
)


def normalize_framework(framework: str) -> str:
  """Normalize framework labels such as 'SOC 2' or 'iso-27001' to catalog keys."""
  return "".join(char for char in framework.upper() if char.isalnum())


def resolve_category(*labels: str | None) -> DocumentCategory:
  """Map template labels, most specific first, to a category enum.

  Called once per template when the catalog is built.
  """
  for label in labels:
    if not label:
      continue
    normalized = label.strip().lower().replace("-", " ").replace("_", " ")
    try:
      return DocumentCategory(normalized.replace(" ", "_"))
    except ValueError:
      pass
    for keyword, category in _CATEGORY_KEYWORDS:
      if keyword in normalized:
        return category
  return DocumentCategory.OTHER


def parse_provider(requested_model: str) -> ProviderId | None:
  """Return the provider named by an explicit model request, or None for 'auto'."""
  normalized = requested_model.strip().lower()
  if normalized == AUTO_MODEL:
    return None
  if normalized in _LEGACY_MODEL_ALIASES:
    return _LEGACY_MODEL_ALIASES[normalized]
  try:
    return ProviderId(normalized)
  except ValueError as exc:
    raise ValueError(f"Unsupported model '{requested_model}'.") from exc


def select_model(document_category: DocumentCategory, framework: str, requested_model: str = AUTO_MODEL) -> ProviderId:
  """Pick the provider for one document.

  An explicit provider request is honored verbatim; breaker state and fallback
  are handled by the executor.
  """
  explicit = parse_provider(requested_model)
  if explicit is not None:
    return explicit

  provider = CATEGORY_PROVIDERS.get(document_category)
  if provider is not None:
    return provider

  return FRAMEWORK_DEFAULT_PROVIDERS.get(normalize_framework(framework), ProviderId.OPENAI)


def fallback_chain(primary: ProviderId, order: tuple[ProviderId, ...] = DEFAULT_FALLBACK_ORDER) -> list[ProviderId]:
  """Return the ordered, de-duplicated provider chain starting with the primary."""
  chain: list[ProviderId] = [primary]
  for provider in order:
    if provider not in chain:
      chain.append(provider)
  return chain
