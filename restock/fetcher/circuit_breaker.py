"""Circuit breaker keyed by retailer with explicit state management."""

import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Union

from restock.models.data_models import CircuitBreakerSnapshot, CircuitState, HalfOpenToken
from restock.monitoring.logger import StructuredLogger


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class MonotonicClock:
    """Default clock implementation using time.monotonic."""

    def now(self) -> float:
        return time.monotonic()


@dataclass
class CircuitBreakerState:
    """Internal state for a single retailer's breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    half_open_token: Optional[HalfOpenToken] = None
    trips: int = 0


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states per retailer.

    - Opens after ``failure_threshold`` consecutive failures
    - Stays open for ``cooldown_seconds``
    - Transitions to half-open for a single trial request
    - Closes on a successful trial or reopens on failure
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of consecutive failures before opening
            cooldown_seconds: Time to wait before allowing a half-open trial
            clock: Clock interface for time management (defaults to MonotonicClock)
            logger: Optional structured logger for state transitions
        """
        if failure_threshold <= 0:
            raise ValueError(f"failure_threshold must be positive, got: {failure_threshold}")
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self._circuits: Dict[str, CircuitBreakerState] = {}

    def _get_circuit(self, retailer_id: str) -> CircuitBreakerState:
        if retailer_id not in self._circuits:
            self._circuits[retailer_id] = CircuitBreakerState()
        return self._circuits[retailer_id]

    def _transition(self, retailer_id: str, circuit: CircuitBreakerState, new_state: CircuitState) -> None:
        if circuit.state == new_state:
            return
        circuit.state = new_state
        if new_state == CircuitState.OPEN:
            circuit.trips += 1
        if self.logger:
            self.logger.circuit_breaker_state(retailer_id, new_state.value)

    def should_allow(self, retailer_id: str) -> Union[bool, HalfOpenToken]:
        """
        Check if a request should be allowed for a retailer.

        Returns:
            - True if circuit is CLOSED
            - False if circuit is OPEN, or HALF_OPEN with a trial in flight
            - HalfOpenToken for the single trial after cooldown
        """
        circuit = self._get_circuit(retailer_id)
        current_time = self.clock.now()

        if circuit.state == CircuitState.CLOSED:
            return True

        if circuit.state == CircuitState.OPEN:
            if current_time - circuit.last_failure_time < self.cooldown_seconds:
                return False
            self._transition(retailer_id, circuit, CircuitState.HALF_OPEN)
            circuit.half_open_token = HalfOpenToken(retailer_id=retailer_id, timestamp=current_time)
            return circuit.half_open_token

        # HALF_OPEN: one trial at a time
        if circuit.half_open_token is not None:
            return False
        circuit.half_open_token = HalfOpenToken(retailer_id=retailer_id, timestamp=current_time)
        return circuit.half_open_token

    def is_open(self, retailer_id: str) -> bool:
        """
        Non-mutating check used to skip retailers in a fan-out.

        True while OPEN within cooldown, or HALF_OPEN with a trial in flight.
        """
        circuit = self._get_circuit(retailer_id)
        if circuit.state == CircuitState.OPEN:
            return self.clock.now() - circuit.last_failure_time < self.cooldown_seconds
        if circuit.state == CircuitState.HALF_OPEN:
            return circuit.half_open_token is not None
        return False

    def record_success(self, retailer_id: str, token: Optional[HalfOpenToken] = None) -> None:
        """
        Record a successful request.

        In HALF_OPEN state the circuit closes even without the token to avoid
        a sticky half-open state.
        """
        circuit = self._get_circuit(retailer_id)
        circuit.failure_count = 0
        circuit.half_open_token = None
        if circuit.state != CircuitState.CLOSED:
            self._transition(retailer_id, circuit, CircuitState.CLOSED)

    def record_failure(self, retailer_id: str) -> bool:
        """
        Record a failed request.

        Returns:
            True if this failure moved the circuit to OPEN
        """
        circuit = self._get_circuit(retailer_id)
        circuit.last_failure_time = self.clock.now()

        if circuit.state == CircuitState.HALF_OPEN:
            circuit.failure_count = self.failure_threshold
            circuit.half_open_token = None
            self._transition(retailer_id, circuit, CircuitState.OPEN)
            return True

        if circuit.state == CircuitState.CLOSED:
            circuit.failure_count += 1
            if circuit.failure_count >= self.failure_threshold:
                self._transition(retailer_id, circuit, CircuitState.OPEN)
                return True

        return False

    def release(self, retailer_id: str, token: HalfOpenToken) -> None:
        """Give back an unfinished HALF_OPEN trial so the next caller can run it."""
        circuit = self._get_circuit(retailer_id)
        if circuit.state == CircuitState.HALF_OPEN and circuit.half_open_token is token:
            circuit.half_open_token = None

    def state(self, retailer_id: str) -> CircuitState:
        """Get current circuit state for a retailer."""
        return self._get_circuit(retailer_id).state

    def snapshot(self, retailer_id: str) -> CircuitBreakerSnapshot:
        circuit = self._get_circuit(retailer_id)
        return CircuitBreakerSnapshot(
            retailer_id=retailer_id,
            state=circuit.state,
            failure_count=circuit.failure_count,
            last_failure_time=circuit.last_failure_time,
            trips=circuit.trips,
        )

    def reset(self, retailer_id: str) -> None:
        """Force the retailer's circuit back to CLOSED, keeping the trip count."""
        circuit = self._get_circuit(retailer_id)
        trips = circuit.trips
        was_closed = circuit.state == CircuitState.CLOSED
        self._circuits[retailer_id] = CircuitBreakerState(trips=trips)
        if not was_closed and self.logger:
            self.logger.circuit_breaker_state(retailer_id, CircuitState.CLOSED.value)
