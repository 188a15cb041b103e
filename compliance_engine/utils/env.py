"""Minimal .env support for local runs."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

ENV_FILE_VARIABLE = "COMPLIANCE_ENV_FILE"


def default_env_path() -> Path:
  """Return ``$COMPLIANCE_ENV_FILE`` when set, else ``.env`` beside the package."""
  explicit = os.getenv(ENV_FILE_VARIABLE)
  if explicit:
    return Path(explicit).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  # Unquoted values may carry a trailing " # comment".
  return value.split(" #", 1)[0].rstrip()


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse ``KEY=value`` lines, ignoring blanks, comments and ``export`` prefixes."""
  values: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, separator, value = line.partition("=")
    key = key.strip()
    if not separator or not key:
      continue
    values[key] = _unquote(value.strip())
  return values


def load_env_file(path: Path, *, override: bool = False) -> None:
  """Copy values from a .env file into ``os.environ``; existing keys win unless ``override``."""
  if not path.is_file():
    return
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    if override or key not in os.environ:
      os.environ[key] = value
