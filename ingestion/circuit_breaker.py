"""
Per-source circuit breaker.

Closed → Open after ``threshold`` consecutive transient failures. While open,
calls are rejected without touching the network until ``cooldown`` seconds
have elapsed. The breaker then becomes half-open and admits exactly one
probe call: success closes it, failure re-opens it for another cooldown.

One instance is owned by each source pipeline; nothing is shared across
sources.
"""

import enum
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class BreakerState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker with a single half-open probe.

    Attributes:
        name: Owner name, used in log lines (usually the source name)
        threshold: Consecutive failures before the circuit opens
        cooldown: Seconds the circuit stays open before admitting a probe
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        name: str,
        threshold: int = 5,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock

        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> BreakerState:
        if self._state == BreakerState.OPEN and self._cooldown_elapsed():
            self._transition(BreakerState.HALF_OPEN)
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def seconds_until_probe(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.cooldown - (self._clock() - self._opened_at))

    def allow_request(self) -> bool:
        """
        Decide whether a call may touch the network.

        In half-open state only the first caller gets through; further
        callers are rejected until that probe reports back.
        """
        state = self.state

        if state == BreakerState.CLOSED:
            return True

        if state == BreakerState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            logger.info(
                f"Circuit breaker half-open for {self.name}, admitting probe call",
                extra={"source": self.name, "breaker_state": state.value},
            )
            return True

        return False

    def record_success(self):
        """Record a successful call; closes the circuit."""
        self._failures = 0
        self._probe_in_flight = False
        if self._state != BreakerState.CLOSED:
            self._opened_at = None
            self._transition(BreakerState.CLOSED)

    def record_failure(self):
        """Record a transient failure and potentially open the circuit."""
        self._failures += 1

        if self._state == BreakerState.HALF_OPEN:
            self._probe_in_flight = False
            self._open()
            return

        if self._state == BreakerState.CLOSED and self._failures >= self.threshold:
            self._open()

    def _open(self):
        self._opened_at = self._clock()
        self._transition(BreakerState.OPEN)
        logger.warning(
            f"Circuit breaker opened for {self.name}. "
            f"Will admit a probe after {self.cooldown} seconds.",
            extra={
                "source": self.name,
                "breaker_state": BreakerState.OPEN.value,
                "consecutive_failures": self._failures,
            },
        )

    def _cooldown_elapsed(self) -> bool:
        return self._opened_at is not None and self._clock() - self._opened_at >= self.cooldown

    def _transition(self, new_state: BreakerState):
        old_state = self._state
        self._state = new_state
        logger.info(
            f"Circuit breaker for {self.name}: {old_state.value} -> {new_state.value}",
            extra={
                "source": self.name,
                "breaker_from": old_state.value,
                "breaker_to": new_state.value,
            },
        )
