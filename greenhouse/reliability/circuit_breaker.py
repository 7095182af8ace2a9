"""
Circuit Breaker
===============

Guards a synchronous call to another service. The breaker is an explicit state
machine:

- ``closed``: calls go through. Failures are counted two ways: a run of
  consecutive failures, and the failure rate over a count-based sliding window
  of recent outcomes (evaluated once ``minimum_calls`` outcomes are recorded).
  Crossing either threshold opens the circuit.
- ``open``: calls are not attempted; the fallback answers immediately. After
  ``open_wait_seconds`` the next call becomes a trial call.
- ``half_open``: exactly one trial call is in flight. Success closes the circuit,
  failure re-opens it. Concurrent callers get the fallback meanwhile.

State is guarded by a lock that is never held while the protected call runs.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Generic, TypeVar

from greenhouse.domain.exceptions import CircuitOpenError
from greenhouse.enums import CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CallResult(Generic[T]):
    """What :meth:`CircuitBreaker.call` produced and how."""

    value: T
    from_fallback: bool = False
    error: BaseException | None = None
    state: CircuitState = CircuitState.CLOSED

    @property
    def degraded(self) -> bool:
        return self.from_fallback


class CircuitBreaker:
    """Closed / open / half-open breaker with an injectable clock."""

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        window_size: int = 10,
        minimum_calls: int = 5,
        failure_rate_threshold: float = 0.5,
        open_wait_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        if not 0.0 < failure_rate_threshold <= 1.0:
            raise ValueError("failure_rate_threshold must be in (0, 1]")
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_size = window_size
        self.minimum_calls = max(1, min(minimum_calls, window_size))
        self.failure_rate_threshold = failure_rate_threshold
        self.open_wait_seconds = open_wait_seconds
        self._clock = clock

        self._lock = Lock()
        self._state = CircuitState.CLOSED
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._consecutive_failures = 0
        self._window: deque[bool] = deque(maxlen=window_size)

        self._successful_calls = 0
        self._failed_calls = 0
        self._rejected_calls = 0
        self._times_opened = 0

    # --- State ------------------------------------------------------------
    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open(self._clock())
            return self._state

    def _maybe_half_open(self, now: float) -> None:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and now - self._opened_at >= self.open_wait_seconds
        ):
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            logger.info("Circuit '%s' half-open; allowing one trial call", self.name)

    def _acquire_permission(self) -> bool:
        with self._lock:
            self._maybe_half_open(self._clock())
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            self._rejected_calls += 1
            return False

    def _trip(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._trial_in_flight = False
        self._times_opened += 1

    def _failure_rate(self) -> float | None:
        if len(self._window) < self.minimum_calls:
            return None
        return self._window.count(False) / len(self._window)

    def _record_success(self) -> None:
        with self._lock:
            self._successful_calls += 1
            self._consecutive_failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._opened_at = None
                self._trial_in_flight = False
                self._window.clear()
                logger.info("Circuit '%s' closed after successful trial call", self.name)
                return
            self._window.append(True)

    def _record_failure(self, exc: BaseException) -> None:
        with self._lock:
            now = self._clock()
            self._failed_calls += 1
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN:
                self._trip(now)
                logger.warning("Circuit '%s' re-opened: trial call failed (%s)", self.name, exc)
                return
            if self._state is not CircuitState.CLOSED:
                return
            self._window.append(False)
            rate = self._failure_rate()
            if self._consecutive_failures >= self.failure_threshold:
                self._trip(now)
                logger.warning(
                    "Circuit '%s' opened after %s consecutive failures (last: %s)",
                    self.name,
                    self._consecutive_failures,
                    exc,
                )
            elif rate is not None and rate >= self.failure_rate_threshold:
                self._trip(now)
                logger.warning(
                    "Circuit '%s' opened: failure rate %.0f%% over last %s calls",
                    self.name,
                    rate * 100,
                    len(self._window),
                )

    # --- Public API -------------------------------------------------------
    def call(self, fn: Callable[[], T], fallback: Callable[[BaseException], T]) -> CallResult[T]:
        """Run *fn* through the breaker; on rejection or failure use *fallback*.

        ``fallback`` receives the exception that caused it to run: a
        :class:`CircuitOpenError` when the call was short-circuited, otherwise
        whatever *fn* raised.
        """
        if not self._acquire_permission():
            exc = CircuitOpenError(f"Circuit '{self.name}' is open", detail={"circuit": self.name})
            return CallResult(value=fallback(exc), from_fallback=True, error=exc, state=self.state)

        try:
            value = fn()
        except Exception as exc:
            self._record_failure(exc)
            return CallResult(value=fallback(exc), from_fallback=True, error=exc, state=self.state)

        self._record_success()
        return CallResult(value=value, state=self.state)

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False
            self._consecutive_failures = 0
            self._window.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            self._maybe_half_open(self._clock())
            rate = self._failure_rate()
            return {
                "name": self.name,
                "state": self._state.value,
                "consecutive_failures": self._consecutive_failures,
                "window_size": self.window_size,
                "window_samples": len(self._window),
                "failure_rate": round(rate * 100, 2) if rate is not None else None,
                "successful_calls": self._successful_calls,
                "failed_calls": self._failed_calls,
                "rejected_calls": self._rejected_calls,
                "times_opened": self._times_opened,
            }
