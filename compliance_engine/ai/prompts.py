"""Prompt builders for document generation and quality scoring."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from compliance_engine.ai.providers.base import CompletionRequest

_DOCUMENT_SECTIONS = (
  "Purpose and Scope",
  "Policy/Procedure Statement",
  "Roles and Responsibilities",
  "Implementation Guidelines",
  "Compliance Requirements",
  "Review and Update Procedures",
  "Related Documents/References",
)

_QUALITY_CRITERIA = (
  "Completeness: all required sections and elements present",
  "Accuracy: technically correct and framework-compliant",
  "Clarity: clear language for the target audience",
  "Actionability: specific, implementable guidance",
  "Professional quality: enterprise-ready formatting and tone",
  "Risk coverage: risks identified and mitigated",
  "Measurability: clear metrics and success criteria",
)

# Profile fields rendered into the system prompt, in display order.
_PROFILE_FIELDS = (
  ("company_name", "Company"),
  ("industry", "Industry"),
  ("company_size", "Size"),
  ("headquarters", "Location"),
  ("cloud_infrastructure", "Cloud Infrastructure"),
  ("data_classification", "Data Classification"),
  ("business_applications", "Business Applications"),
)


def _format_value(value: Any) -> str:
  if isinstance(value, (list, tuple)):
    return ", ".join(str(item) for item in value) or "-"
  if value is None or value == "":
    return "-"
  return str(value)


def format_company_profile(profile: Mapping[str, Any]) -> str:
  """Render the known company profile fields as a bullet list."""
  lines = [f"- {label}: {_format_value(profile.get(key))}" for key, label in _PROFILE_FIELDS]
  return "\n".join(lines)


def build_document_request(*, title: str, category: str, framework: str, company_profile: Mapping[str, Any], additional_context: str | None, max_tokens: int) -> CompletionRequest:
  """Build the completion request for one compliance document."""
  company_name = _format_value(company_profile.get("company_name"))
  sections = "\n".join(f"{index}. {section}" for index, section in enumerate(_DOCUMENT_SECTIONS, start=1))

  system_prompt = (
    f"You are a cybersecurity compliance expert specializing in {framework}. "
    "Generate comprehensive, professional compliance documentation that meets industry standards and regulatory requirements.\n\n"
    f"Company Profile Context:\n{format_company_profile(company_profile)}\n\n"
    f"Document Requirements:\n- Title: {title}\n- Category: {category}\n- Framework: {framework}\n\n"
    f"Include these sections:\n{sections}\n\n"
    "Format the response as Markdown with clear headings and detailed content."
  )

  user_prompt = f"{title}\n\nGenerate a complete {title} for {company_name}. The document must comply with {framework} and include specific, measurable controls the organization can implement immediately."
  if additional_context:
    user_prompt = f"{user_prompt}\n\nAdditional context from the requester:\n{additional_context}"

  return CompletionRequest(system_prompt=system_prompt, user_prompt=user_prompt, max_tokens=max_tokens)


def build_quality_request(*, content: str, title: str, framework: str, document_type: str) -> CompletionRequest:
  """Build the JSON-only scoring request for a generated document."""
  criteria = "\n".join(f"- {criterion}" for criterion in _QUALITY_CRITERIA)
  system_prompt = (
    f"You are a compliance quality assessor specializing in {framework} documentation. "
    "Score the document from 0 to 100.\n\n"
    f"Evaluation criteria:\n{criteria}\n\n"
    'Respond with JSON only: {"overallScore": number, "grade": "A"|"B"|"C"|"D"|"F", '
    '"metrics": [{"name": string, "score": number, "feedback": string}], '
    '"strengths": [string], "weaknesses": [string], "recommendations": [string]}'
  )
  user_prompt = f"Assess this {framework} {document_type} titled '{title}':\n\n{content}"
  return CompletionRequest(system_prompt=system_prompt, user_prompt=user_prompt, max_tokens=1000, json_output=True)
