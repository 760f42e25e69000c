"""
Circuit Breaker for External Collaborators

Protects the progression engine from slow or failing collaborators (the AI
behavior classifier in particular). When consecutive failures exceed the
threshold the circuit opens and callers get their fallback immediately.
Every guarded call is bounded by a timeout; a timeout counts as a failure.
"""

import asyncio
from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Optional, Callable, TypeVar, Awaitable
from src.config import get_settings
from src.utils.observability import logger

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation, requests flow through
    OPEN = "open"          # Failing, reject requests immediately
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitStats:
    """Circuit breaker statistics."""
    consecutive_failures: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_timeouts: int = 0
    last_failure_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    state_changes: int = 0


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascading failures.

    States:
    - CLOSED: Normal operation. Failures are counted.
    - OPEN: Collaborator is down. Calls fail fast with fallback.
    - HALF_OPEN: Testing recovery. Limited trial calls allowed.

    Usage:
        breaker = CircuitBreaker(name="behavior_ai", call_timeout=20.0)
        analysis = await breaker.call_with_fallback(
            lambda: agent.run(prompt),
            fallback=failed_analysis,
        )
    """

    def __init__(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[float] = None,
        half_open_max_calls: Optional[int] = None,
        call_timeout: Optional[float] = None,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Identifier for this circuit (for logging)
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds before trying recovery
            half_open_max_calls: Max calls allowed in half-open state
            call_timeout: Seconds before a guarded call is abandoned (None = unbounded)
        """
        settings = get_settings()
        self.name = name
        self._failure_threshold = failure_threshold or settings.circuit_breaker_failure_threshold
        self._recovery_timeout = recovery_timeout or settings.circuit_breaker_recovery_timeout
        self._half_open_max_calls = half_open_max_calls or settings.circuit_breaker_half_open_max_calls
        self._call_timeout = call_timeout

        self._state = CircuitState.CLOSED
        self._stats = CircuitStats()
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def stats(self) -> CircuitStats:
        """Circuit statistics."""
        return self._stats

    async def call(
        self,
        func: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> T:
        """
        Execute function through circuit breaker.

        Args:
            func: Async function to execute
            fallback: Function returning fallback value if circuit open

        Returns:
            Result from func, or fallback when the circuit rejects the call

        Raises:
            asyncio.TimeoutError: When the call exceeds call_timeout
            Exception: Whatever func raised (after being recorded)
        """
        async with self._lock:
            self._check_state_transition()

            if self._state == CircuitState.OPEN:
                logger.warning(f"Circuit '{self.name}' is OPEN, using fallback")
                return fallback()

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self._half_open_max_calls:
                    logger.warning(f"Circuit '{self.name}' HALF_OPEN limit reached, using fallback")
                    return fallback()
                self._half_open_calls += 1

        # Execute outside lock to allow concurrency
        try:
            if self._call_timeout is not None:
                result = await asyncio.wait_for(func(), timeout=self._call_timeout)
            else:
                result = await func()
        except asyncio.TimeoutError as e:
            self._stats.total_timeouts += 1
            await self._record_failure(e)
            raise
        except Exception as e:
            await self._record_failure(e)
            raise

        await self._record_success()
        return result

    async def call_with_fallback(
        self,
        func: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> T:
        """
        Execute function, returning fallback on any failure or timeout.

        Returns:
            Result from func or fallback (never raises)
        """
        try:
            return await self.call(func, fallback)
        except asyncio.TimeoutError:
            logger.error(f"Circuit '{self.name}' call timed out after {self._call_timeout}s, using fallback")
            return fallback()
        except Exception as e:
            logger.error(f"Circuit '{self.name}' call failed, using fallback: {e}")
            return fallback()

    def _check_state_transition(self) -> None:
        """Move OPEN -> HALF_OPEN once the recovery timeout elapsed."""
        if self._state != CircuitState.OPEN or not self._stats.opened_at:
            return

        elapsed = (datetime.now(timezone.utc) - self._stats.opened_at).total_seconds()
        if elapsed >= self._recovery_timeout:
            self._transition_to(CircuitState.HALF_OPEN)
            self._half_open_calls = 0

    async def _record_success(self) -> None:
        async with self._lock:
            self._stats.consecutive_failures = 0
            self._stats.total_successes += 1
            self._stats.last_success_time = datetime.now(timezone.utc)

            if self._state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit '{self.name}' recovered, closing")
                self._transition_to(CircuitState.CLOSED)

    async def _record_failure(self, error: BaseException) -> None:
        async with self._lock:
            self._stats.consecutive_failures += 1
            self._stats.total_failures += 1
            self._stats.last_failure_time = datetime.now(timezone.utc)

            logger.warning(
                f"Circuit '{self.name}' failure {self._stats.consecutive_failures}/"
                f"{self._failure_threshold}: {error!r}"
            )

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}' trial call failed, reopening")
                self._transition_to(CircuitState.OPEN)
            elif self._stats.consecutive_failures >= self._failure_threshold:
                logger.error(f"Circuit '{self.name}' threshold reached, opening")
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._stats.opened_at = datetime.now(timezone.utc)

        logger.info(f"Circuit '{self.name}' state: {old_state.value} -> {new_state.value}")

    async def reset(self) -> None:
        """Manually reset circuit to closed state."""
        async with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._stats.consecutive_failures = 0
            self._half_open_calls = 0

    def get_status(self) -> dict:
        """Get circuit status for monitoring."""
        return {
            "name": self.name,
            "state": self._state.value,
            "consecutive_failures": self._stats.consecutive_failures,
            "total_failures": self._stats.total_failures,
            "total_successes": self._stats.total_successes,
            "total_timeouts": self._stats.total_timeouts,
            "failure_threshold": self._failure_threshold,
            "recovery_timeout_seconds": self._recovery_timeout,
            "call_timeout_seconds": self._call_timeout,
            "last_failure": self._stats.last_failure_time.isoformat() if self._stats.last_failure_time else None,
            "last_success": self._stats.last_success_time.isoformat() if self._stats.last_success_time else None,
            "opened_at": self._stats.opened_at.isoformat() if self._stats.opened_at else None,
        }


# Circuits shared across service instances, one per collaborator
_circuits: Dict[str, CircuitBreaker] = {}


def get_circuit(name: str, call_timeout: Optional[float] = None) -> CircuitBreaker:
    """Get or create the named circuit breaker."""
    if name not in _circuits:
        _circuits[name] = CircuitBreaker(name=name, call_timeout=call_timeout)
    return _circuits[name]


def get_behavior_ai_circuit() -> CircuitBreaker:
    """Circuit guarding the AI behavior-pattern classifier."""
    return get_circuit(
        "behavior_ai",
        call_timeout=get_settings().ai_request_timeout_seconds,
    )
