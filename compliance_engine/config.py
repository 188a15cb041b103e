"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from compliance_engine.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_DEFAULT_ORIGINS = "http://localhost:5173"
_PROVIDER_IDS = ("anthropic", "openai", "gemini")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the compliance generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  openai_api_key: str | None
  openai_model: str
  anthropic_api_key: str | None
  anthropic_model: str
  gemini_api_key: str | None
  gemini_model: str
  max_output_tokens: int
  provider_timeout_seconds: float
  breaker_failure_threshold: int
  breaker_cooldown_seconds: float
  guardrail_block_threshold: float
  guardrail_max_content_chars: int
  job_workers: int
  job_queue_size: int
  unit_delay_seconds: float
  quality_provider: str
  cross_validation_threshold: int
  dummy_responses: bool


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  origins = [origin.strip() for origin in (raw or _DEFAULT_ORIGINS).split(",") if origin.strip()]

  if not origins:
    raise ValueError("COMPLIANCE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("COMPLIANCE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("COMPLIANCE_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("COMPLIANCE_DEBUG"))

  log_max_bytes = _positive_int("COMPLIANCE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("COMPLIANCE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("COMPLIANCE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Breaker and timeout knobs apply to every provider adapter.
  provider_timeout_seconds = _positive_float("COMPLIANCE_PROVIDER_TIMEOUT_SECONDS", "60")
  breaker_failure_threshold = _positive_int("COMPLIANCE_BREAKER_FAILURE_THRESHOLD", "5")
  breaker_cooldown_seconds = _positive_float("COMPLIANCE_BREAKER_COOLDOWN_SECONDS", "30")

  guardrail_block_threshold = float(os.getenv("COMPLIANCE_GUARDRAIL_BLOCK_THRESHOLD", "7.0"))
  if not 0 < guardrail_block_threshold <= 10:
    raise ValueError("COMPLIANCE_GUARDRAIL_BLOCK_THRESHOLD must be within (0, 10].")
  guardrail_max_content_chars = _positive_int("COMPLIANCE_GUARDRAIL_MAX_CONTENT_CHARS", "50000")

  unit_delay_seconds = float(os.getenv("COMPLIANCE_UNIT_DELAY_SECONDS", "0"))
  if unit_delay_seconds < 0:
    raise ValueError("COMPLIANCE_UNIT_DELAY_SECONDS must not be negative.")

  cross_validation_threshold = int(os.getenv("COMPLIANCE_CROSS_VALIDATION_THRESHOLD", "80"))
  if not 0 <= cross_validation_threshold <= 100:
    raise ValueError("COMPLIANCE_CROSS_VALIDATION_THRESHOLD must be between 0 and 100.")

  quality_provider = (os.getenv("COMPLIANCE_QUALITY_PROVIDER") or "anthropic").strip().lower()
  if quality_provider not in _PROVIDER_IDS:
    raise ValueError(f"COMPLIANCE_QUALITY_PROVIDER must be one of: {', '.join(_PROVIDER_IDS)}.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("COMPLIANCE_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("COMPLIANCE_LOG_HTTP_4XX")),
    pg_dsn=_optional_str(os.getenv("COMPLIANCE_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_positive_int("COMPLIANCE_PG_CONNECT_TIMEOUT", "5"),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_model=os.getenv("COMPLIANCE_OPENAI_MODEL", "gpt-4o"),
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    anthropic_model=os.getenv("COMPLIANCE_ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    gemini_model=os.getenv("COMPLIANCE_GEMINI_MODEL", "gemini-2.5-pro"),
    max_output_tokens=_positive_int("COMPLIANCE_MAX_OUTPUT_TOKENS", "4000"),
    provider_timeout_seconds=provider_timeout_seconds,
    breaker_failure_threshold=breaker_failure_threshold,
    breaker_cooldown_seconds=breaker_cooldown_seconds,
    guardrail_block_threshold=guardrail_block_threshold,
    guardrail_max_content_chars=guardrail_max_content_chars,
    job_workers=_positive_int("COMPLIANCE_JOB_WORKERS", "4"),
    job_queue_size=_positive_int("COMPLIANCE_JOB_QUEUE_SIZE", "100"),
    unit_delay_seconds=unit_delay_seconds,
    quality_provider=quality_provider,
    cross_validation_threshold=cross_validation_threshold,
    dummy_responses=_parse_bool(os.getenv("COMPLIANCE_DUMMY_RESPONSES")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("COMPLIANCE_DEBUG"))
  pg_connect_timeout = _positive_int("COMPLIANCE_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = _optional_str(os.getenv("COMPLIANCE_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
