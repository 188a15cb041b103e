from __future__ import annotations

import pytest

from compliance_engine.ai.errors import UnknownFrameworkError
from compliance_engine.ai.model_selection import DocumentCategory, ProviderId, select_model
from compliance_engine.jobs.templates import TemplateCatalog


def test_catalog_resolves_aliases_and_counts() -> None:
  catalog = TemplateCatalog()

  assert catalog.canonical("soc 2") == "SOC2"
  assert catalog.canonical("FedRAMP Moderate") == "FEDRAMP"
  assert catalog.canonical("NIST 800-53") == "NIST"
  assert catalog.count(["SOC2", "ISO27001"]) == 7


def test_unknown_framework_raises() -> None:
  with pytest.raises(UnknownFrameworkError, match="HIPAA"):
    TemplateCatalog().canonical("HIPAA")


def test_soc2_templates_route_to_expected_providers() -> None:
  templates = TemplateCatalog().templates_for("SOC2")

  assert [template.template_id for template in templates] == ["soc2-001", "soc2-002", "soc2-003"]
  assert [select_model(template.resolved_category, "SOC2") for template in templates] == [ProviderId.ANTHROPIC, ProviderId.ANTHROPIC, ProviderId.OPENAI]


def test_fedramp_ssp_uses_large_context_provider() -> None:
  ssp = TemplateCatalog().templates_for("FEDRAMP")[0]

  assert ssp.resolved_category is DocumentCategory.SYSTEM_SECURITY_PLAN
  assert select_model(ssp.resolved_category, "FEDRAMP") is ProviderId.GEMINI
