"""Error taxonomy and provider error classification for the generation engine."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


class OrchestrationError(Exception):
  """Base class for failures raised by the generation engine."""


class GuardrailBlockedError(OrchestrationError):
  """Input rejected by guardrails before any provider was contacted."""

  def __init__(self, message: str, *, severity: str, categories: Sequence[str] = ()) -> None:
    super().__init__(message)
    self.severity = severity
    self.categories = tuple(categories)


class ProviderUnavailableError(OrchestrationError):
  """Provider skipped because its circuit breaker rejected the call."""

  def __init__(self, provider: str, state: str) -> None:
    super().__init__(f"Circuit breaker for provider '{provider}' is {state}.")
    self.provider = provider
    self.state = state


class ProviderCallFailedError(OrchestrationError):
  """Provider call failed with a timeout, network error, or provider error."""

  def __init__(self, provider: str, message: str, *, duration_ms: int | None = None) -> None:
    super().__init__(f"Provider '{provider}' call failed: {message}")
    self.provider = provider
    self.duration_ms = duration_ms


@dataclass(frozen=True)
class ProviderAttempt:
  """One provider attempt made for a unit of work."""

  provider: str
  outcome: str
  error: str | None = None
  duration_ms: int | None = None


class AllProvidersExhaustedError(OrchestrationError):
  """Every provider in the fallback chain failed or was unavailable."""

  def __init__(self, attempts: Sequence[ProviderAttempt]) -> None:
    tried = ", ".join(f"{attempt.provider}={attempt.outcome}" for attempt in attempts) or "none"
    super().__init__(f"No provider available (tried: {tried}).")
    self.attempts = tuple(attempts)


class PersistenceFailureError(OrchestrationError):
  """Document Store or Jobs Repository write failed."""


class RateLimitExceededError(OrchestrationError):
  """The caller's rate-limit decision denied the request."""

  def __init__(self, retry_after_seconds: int | None = None) -> None:
    super().__init__("Rate limit exceeded for generation requests.")
    self.retry_after_seconds = retry_after_seconds


class JobQueueFullError(OrchestrationError):
  """The job queue is at capacity."""


class UnknownFrameworkError(ValueError):
  """Requested framework has no template catalog."""


_TRANSIENT_HINTS: tuple[str, ...] = (
  "rate limit",
  "quota",
  "429",
  "too many requests",
  "timeout",
  "timed out",
  "connection",
  "network",
  "service unavailable",
  "overloaded",
  "bad gateway",
  "gateway",
  "503",
  "502",
)

_CONFIGURATION_HINTS: tuple[str, ...] = (
  "api key",
  "api_key",
  "unauthorized",
  "forbidden",
  "unsupported model",
  "model not found",
  "no such model",
)


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def is_transient_error(exc: BaseException) -> bool:
  """Return True when an exception looks like a temporary provider condition."""
  return _match_hint(str(exc).lower(), _TRANSIENT_HINTS)


def is_configuration_error(exc: BaseException) -> bool:
  """Return True when an exception points at credentials or an unknown model."""
  return _match_hint(str(exc).lower(), _CONFIGURATION_HINTS)


def describe_error(exc: BaseException) -> str:
  """Return a short single-line description suitable for job records."""
  message = str(exc).strip().splitlines()[0] if str(exc).strip() else ""
  if isinstance(exc, TimeoutError) and not message:
    return "timed out"
  if message:
    return f"{type(exc).__name__}: {message}"[:500]
  return type(exc).__name__
