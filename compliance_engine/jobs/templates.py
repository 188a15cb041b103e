"""Document template catalog keyed by compliance framework."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from compliance_engine.ai.errors import UnknownFrameworkError
from compliance_engine.ai.model_selection import DocumentCategory, normalize_framework, resolve_category


@dataclass(frozen=True)
class DocumentTemplate:
  """Blueprint for one generated document."""

  template_id: str
  title: str
  framework: str
  category: str
  document_type: str
  description: str = ""
  notes: str | None = None
  resolved_category: DocumentCategory = field(default=DocumentCategory.OTHER)


def _template(template_id: str, title: str, framework: str, category: str, document_type: str, description: str) -> DocumentTemplate:
  # Resolve the selection category once so the selector works on enums only.
  return DocumentTemplate(template_id=template_id, title=title, framework=framework, category=category, document_type=document_type, description=description, resolved_category=resolve_category(category, document_type, title))


DEFAULT_TEMPLATES: dict[str, tuple[DocumentTemplate, ...]] = {
  "SOC2": (
    _template("soc2-001", "Security Controls Framework", "SOC2", "framework", "framework", "Trust Services Criteria control framework"),
    _template("soc2-002", "Access Control Policy", "SOC2", "policy", "policy", "Logical and physical access requirements (CC6)"),
    _template("soc2-003", "Incident Response Plan", "SOC2", "response", "plan", "Detection, escalation and recovery (CC7)"),
  ),
  "ISO27001": (
    _template("iso-001", "ISMS Scope Document", "ISO27001", "management", "standard", "Boundaries and applicability of the ISMS (Clause 4.3)"),
    _template("iso-002", "Information Security Policy", "ISO27001", "policy", "policy", "Top-level information security policy (Clause 5.2)"),
    _template("iso-003", "Risk Assessment and Treatment Plan", "ISO27001", "assessment", "assessment", "Risk methodology and treatment (Clauses 6.1.2, 6.1.3)"),
    _template("iso-004", "Statement of Applicability", "ISO27001", "assessment", "assessment", "Annex A control applicability (Clause 6.1.3 d)"),
  ),
  "FEDRAMP": (
    _template("fedramp-001", "System Security Plan", "FedRAMP", "system security plan", "plan", "Authorization boundary and control implementation"),
    _template("fedramp-002", "Configuration Management Baseline", "FedRAMP", "baseline", "control", "Baseline configurations and change control (CM-2)"),
    _template("fedramp-003", "Continuous Monitoring Procedure", "FedRAMP", "procedure", "procedure", "Monthly scanning and POA&M reporting"),
  ),
  "NIST": (
    _template("nist-001", "Security and Privacy Program Policy", "NIST-800-53", "policy", "policy", "Program management controls (PM family)"),
    _template("nist-002", "Audit and Accountability Procedure", "NIST-800-53", "procedure", "procedure", "Event logging and review (AU family)"),
    _template("nist-003", "Contingency Plan", "NIST-800-53", "plan", "plan", "Backup, recovery and alternate processing (CP family)"),
  ),
}

# Alternate spellings accepted from callers.
_FRAMEWORK_ALIASES: dict[str, str] = {
  "SOC2TYPE2": "SOC2",
  "ISO270012022": "ISO27001",
  "FEDRAMPLOW": "FEDRAMP",
  "FEDRAMPMODERATE": "FEDRAMP",
  "FEDRAMPHIGH": "FEDRAMP",
  "NIST80053": "NIST",
}


class TemplateCatalog:
  """Resolve the ordered template list for each framework."""

  def __init__(self, templates: Mapping[str, Sequence[DocumentTemplate]] | None = None) -> None:
    source = DEFAULT_TEMPLATES if templates is None else templates
    self._templates: dict[str, tuple[DocumentTemplate, ...]] = {normalize_framework(key): tuple(value) for key, value in source.items()}

  def canonical(self, framework: str) -> str:
    """Return the catalog key for a framework label or raise UnknownFrameworkError."""
    key = normalize_framework(framework)
    key = _FRAMEWORK_ALIASES.get(key, key)
    if key not in self._templates:
      raise UnknownFrameworkError(f"No templates found for framework: {framework} (supported: {', '.join(self.frameworks)})")
    return key

  def templates_for(self, framework: str) -> tuple[DocumentTemplate, ...]:
    return self._templates[self.canonical(framework)]

  def count(self, frameworks: Iterable[str]) -> int:
    """Total documents a job over these frameworks will produce."""
    return sum(len(self.templates_for(framework)) for framework in frameworks)

  @property
  def frameworks(self) -> list[str]:
    return list(self._templates)
