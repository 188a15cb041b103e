"""Per-provider circuit breakers.

Each breaker is shared by every coroutine that calls its provider, so all
state transitions are serialized through one ``asyncio.Lock`` per breaker.
Breakers live in an explicit ``BreakerRegistry`` that the executor receives
at construction time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from compliance_engine.ai.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CircuitState(str, Enum):
  """Circuit breaker states."""

  CLOSED = "closed"
  OPEN = "open"
  HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerConfig:
  """Thresholds shared by all breakers of a registry."""

  failure_threshold: int = 5
  cooldown_seconds: float = 30.0

  def __post_init__(self) -> None:
    if self.failure_threshold < 1:
      raise ValueError("failure_threshold must be at least 1.")
    if self.cooldown_seconds <= 0:
      raise ValueError("cooldown_seconds must be positive.")


class CircuitBreaker:
  """Closed/open/half-open breaker guarding one provider.

  Callers acquire before every provider call and report the outcome with
  ``record_success`` or ``record_failure``. A rejected acquire never touches
  the failure counter. While half-open exactly one trial call is admitted and
  any concurrent caller is rejected until the trial reports back.
  """

  def __init__(self, name: str, config: BreakerConfig | None = None, *, clock: Clock = time.monotonic) -> None:
    self.name = name
    self.config = config or BreakerConfig()
    self._clock = clock
    self._lock = asyncio.Lock()
    self._state = CircuitState.CLOSED
    self._consecutive_failures = 0
    self._last_failure_at: float | None = None
    self._trial_in_flight = False
    self._total_calls = 0
    self._total_successes = 0
    self._total_failures = 0
    self._total_rejections = 0

  @property
  def state(self) -> CircuitState:
    """Current state without evaluating the cooldown."""
    return self._state

  @property
  def consecutive_failures(self) -> int:
    return self._consecutive_failures

  async def acquire(self) -> None:
    """Admit one call or raise ``ProviderUnavailableError``."""
    async with self._lock:
      if self._state is CircuitState.OPEN:
        # Move to half-open once the cooldown since the last failure has elapsed.
        if self._cooldown_elapsed():
          logger.info("Circuit %s: transitioning to half_open after cooldown", self.name)
          self._state = CircuitState.HALF_OPEN
          self._trial_in_flight = False
        else:
          self._total_rejections += 1
          raise ProviderUnavailableError(self.name, CircuitState.OPEN.value)

      if self._state is CircuitState.HALF_OPEN:
        if self._trial_in_flight:
          self._total_rejections += 1
          raise ProviderUnavailableError(self.name, CircuitState.HALF_OPEN.value)
        self._trial_in_flight = True

      self._total_calls += 1

  async def record_success(self) -> None:
    """Report a successful call."""
    async with self._lock:
      self._total_successes += 1
      if self._state is CircuitState.HALF_OPEN:
        logger.info("Circuit %s: closing after successful trial call", self.name)
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False
        self._consecutive_failures = 0
        self._last_failure_at = None
      elif self._state is CircuitState.CLOSED:
        self._consecutive_failures = 0

  async def record_failure(self) -> None:
    """Report a failed call; every failure is counted."""
    async with self._lock:
      self._total_failures += 1
      self._consecutive_failures += 1
      self._last_failure_at = self._clock()

      if self._state is CircuitState.HALF_OPEN:
        logger.warning("Circuit %s: reopening after failed trial call", self.name)
        self._state = CircuitState.OPEN
        self._trial_in_flight = False
      elif self._state is CircuitState.CLOSED and self._consecutive_failures >= self.config.failure_threshold:
        logger.warning("Circuit %s: opening after %d consecutive failures", self.name, self._consecutive_failures)
        self._state = CircuitState.OPEN

  async def release(self) -> None:
    """Give back an admitted slot whose call never reported an outcome."""
    async with self._lock:
      if self._state is CircuitState.HALF_OPEN and self._trial_in_flight:
        # An abandoned trial proves nothing; return to open with the original failure time.
        self._state = CircuitState.OPEN
        self._trial_in_flight = False

  async def reset(self) -> None:
    """Force the breaker closed and clear its failure history."""
    async with self._lock:
      self._state = CircuitState.CLOSED
      self._consecutive_failures = 0
      self._last_failure_at = None
      self._trial_in_flight = False
      logger.info("Circuit %s: manually reset", self.name)

  def stats(self) -> dict[str, Any]:
    """Return a snapshot of breaker state and counters."""
    seconds_since_failure = None
    if self._last_failure_at is not None:
      seconds_since_failure = round(max(self._clock() - self._last_failure_at, 0.0), 3)
    return {
      "provider": self.name,
      "state": self._state.value,
      "consecutive_failures": self._consecutive_failures,
      "failure_threshold": self.config.failure_threshold,
      "cooldown_seconds": self.config.cooldown_seconds,
      "seconds_since_last_failure": seconds_since_failure,
      "total_calls": self._total_calls,
      "total_successes": self._total_successes,
      "total_failures": self._total_failures,
      "total_rejections": self._total_rejections,
    }

  def _cooldown_elapsed(self) -> bool:
    if self._last_failure_at is None:
      return True
    return self._clock() - self._last_failure_at >= self.config.cooldown_seconds


class BreakerRegistry:
  """Owns one breaker per provider name."""

  def __init__(self, config: BreakerConfig | None = None, *, clock: Clock = time.monotonic, providers: Iterable[str] = ()) -> None:
    self._config = config or BreakerConfig()
    self._clock = clock
    self._breakers: dict[str, CircuitBreaker] = {}
    for provider in providers:
      self.get(provider)

  def get(self, provider: str) -> CircuitBreaker:
    """Return the breaker for a provider, creating it on first use."""
    breaker = self._breakers.get(provider)
    if breaker is None:
      breaker = CircuitBreaker(provider, self._config, clock=self._clock)
      self._breakers[provider] = breaker
    return breaker

  def stats(self) -> dict[str, dict[str, Any]]:
    """Return stats for every known breaker keyed by provider."""
    return {name: breaker.stats() for name, breaker in self._breakers.items()}

  async def reset(self, provider: str) -> None:
    """Manually close one provider's breaker."""
    if provider not in self._breakers:
      raise KeyError(f"Unknown provider '{provider}'.")
    await self._breakers[provider].reset()
