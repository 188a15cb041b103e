"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_job_id() -> str:
  """Return a new generation job identifier."""
  return str(uuid.uuid4())


def generate_document_id() -> str:
  """Return a new document identifier."""
  return str(uuid.uuid4())


def generate_request_id() -> str:
  """Return a correlation id for guardrail and audit records."""
  return uuid.uuid4().hex
