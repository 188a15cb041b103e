"""Provider execution with circuit breakers and ordered fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from compliance_engine.ai.circuit_breaker import BreakerRegistry
from compliance_engine.ai.errors import AllProvidersExhaustedError, ProviderAttempt, ProviderCallFailedError, ProviderUnavailableError, describe_error, is_configuration_error, is_transient_error
from compliance_engine.ai.providers.base import CompletionRequest, Provider

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
  """Output of one successful provider call."""

  content: str
  provider_used: str
  model: str
  finish_reason: str | None = None
  usage: dict[str, int] | None = None
  quality_score: int | None = None
  attempts: list[ProviderAttempt] = field(default_factory=list)


class CircuitBreakerExecutor:
  """Invoke providers in chain order, skipping any whose breaker rejects the call."""

  def __init__(self, providers: Mapping[str, Provider], registry: BreakerRegistry, *, timeout_seconds: float = 60.0) -> None:
    if timeout_seconds <= 0:
      raise ValueError("timeout_seconds must be positive.")
    self._providers = dict(providers)
    self._registry = registry
    self._timeout_seconds = timeout_seconds
    # Register breakers up front so status reports include idle providers.
    for name in self._providers:
      self._registry.get(name)

  @property
  def registry(self) -> BreakerRegistry:
    return self._registry

  async def generate(self, request: CompletionRequest, chain: Sequence[str]) -> GenerationResult:
    """Return the first successful completion along the fallback chain.

    Raises ``AllProvidersExhaustedError`` with the ordered attempt list when
    no provider produced content.
    """
    attempts: list[ProviderAttempt] = []

    for provider_name in _dedupe(chain):
      provider = self._providers.get(provider_name)
      if provider is None:
        attempts.append(ProviderAttempt(provider=provider_name, outcome="unconfigured"))
        logger.warning("Provider %s is not configured; trying next provider", provider_name)
        continue

      try:
        result = await self._call(provider_name, provider, request)
      except ProviderUnavailableError as exc:
        attempts.append(ProviderAttempt(provider=provider_name, outcome="unavailable", error=str(exc)))
        logger.info("Skipping provider %s: breaker %s", provider_name, exc.state)
        continue
      except ProviderCallFailedError as exc:
        attempts.append(ProviderAttempt(provider=provider_name, outcome="failed", error=str(exc), duration_ms=exc.duration_ms))
        logger.warning("Provider %s failed; falling back: %s", provider_name, exc)
        continue

      attempts.append(ProviderAttempt(provider=provider_name, outcome="succeeded", duration_ms=result.duration_ms))
      return GenerationResult(content=result.content, provider_used=provider_name, model=result.model, finish_reason=result.finish_reason, usage=result.usage, attempts=attempts)

    logger.error("All providers exhausted after %d attempts", len(attempts))
    raise AllProvidersExhaustedError(attempts)

  async def _call(self, provider_name: str, provider: Provider, request: CompletionRequest) -> _CallResult:
    breaker = self._registry.get(provider_name)
    await breaker.acquire()

    start = time.monotonic()
    try:
      response = await asyncio.wait_for(provider.complete(request), timeout=self._timeout_seconds)
    except asyncio.CancelledError:
      await breaker.release()
      raise
    except asyncio.TimeoutError as exc:
      await breaker.record_failure()
      raise ProviderCallFailedError(provider_name, f"timed out after {self._timeout_seconds:g}s", duration_ms=_elapsed_ms(start)) from exc
    except Exception as exc:  # noqa: BLE001
      await breaker.record_failure()
      if is_configuration_error(exc):
        logger.error("Provider %s looks misconfigured: %s", provider_name, describe_error(exc))
      elif not is_transient_error(exc):
        logger.warning("Provider %s raised an unclassified error", provider_name, exc_info=True)
      raise ProviderCallFailedError(provider_name, describe_error(exc), duration_ms=_elapsed_ms(start)) from exc

    await breaker.record_success()
    return _CallResult(content=response.content, model=response.model, finish_reason=response.finish_reason, usage=response.usage, duration_ms=_elapsed_ms(start))


@dataclass(frozen=True)
class _CallResult:
  content: str
  model: str
  finish_reason: str | None
  usage: dict[str, int] | None
  duration_ms: int


def _elapsed_ms(start: float) -> int:
  return int((time.monotonic() - start) * 1000)


def _dedupe(chain: Sequence[str]) -> list[str]:
  seen: list[str] = []
  for name in chain:
    key = str(getattr(name, "value", name))
    if key not in seen:
      seen.append(key)
  return seen
