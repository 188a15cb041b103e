"""Lenient JSON parsing for model outputs."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON, recovering from code fences, surrounding prose and trailing commas."""
  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    last_error = exc

  unfenced = _FENCE_RE.sub("", raw.strip())
  candidate = extract_json_block(unfenced)

  # Fail fast when no JSON-shaped payload is present in the response.
  if candidate is None:
    raise last_error

  for attempt in (candidate, _TRAILING_COMMA_RE.sub(r"\1", candidate)):
    try:
      return json.loads(attempt)
    except json.JSONDecodeError as exc:
      last_error = exc

  raise last_error


def extract_json_block(raw: str) -> str | None:
  """Return the first balanced JSON object or array in the text."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  # Track string literals so braces inside values do not affect depth.
  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
