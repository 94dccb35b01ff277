# src/circuitsim_core/events.py
"""
Typed notification events and the bus that carries them.

The circuit graph and the simulator publish immutable event objects; user
interfaces, board models and tests subscribe to the event types they care
about. Publishers never know who is listening, and the core does not depend on
any particular event-loop framework.

Handlers run synchronously on the publishing thread, in subscription order.
An exception raised by a handler propagates to the publisher.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CircuitEvent:
    """Marker base class for every event published by the core."""
    pass


@dataclass(frozen=True)
class TopologyChanged(CircuitEvent):
    """A component, node or connection was added, removed or rewired."""
    reason: str


@dataclass(frozen=True)
class ComponentChanged(CircuitEvent):
    """A component's configuration changed (e.g. a pin write) without a topology change."""
    component_id: str


@dataclass(frozen=True)
class SimulationStarted(CircuitEvent):
    pass


@dataclass(frozen=True)
class SimulationStopped(CircuitEvent):
    pass


@dataclass(frozen=True)
class SimulationReset(CircuitEvent):
    pass


@dataclass(frozen=True)
class StepCompleted(CircuitEvent):
    """One full nonlinear resolve finished (converged or not)."""
    iterations: int
    time: float


@dataclass(frozen=True)
class ConvergenceAchieved(CircuitEvent):
    iterations: int


@dataclass(frozen=True)
class ConvergenceFailed(CircuitEvent):
    iterations: int


@dataclass(frozen=True)
class SolverError(CircuitEvent):
    message: str


@dataclass(frozen=True)
class ComponentStateChanged(CircuitEvent):
    """
    A component's solved voltage/current or derived state (e.g. LED on/off and
    brightness) changed noticeably during a resolve.
    """
    component_id: str
    voltage: float
    current: float
    state: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OverloadDetected(CircuitEvent):
    """A component transitioned into its overloaded state (one-shot per transition)."""
    component_id: str
    reason: str


TEvent = TypeVar("TEvent", bound=CircuitEvent)
Handler = Callable[[Any], None]


class EventBus:
    """
    A minimal, thread-safe publish/subscribe channel for `CircuitEvent` objects.

    Subscriptions are keyed on the exact event class. `subscribe_all` registers
    a handler that receives every event, which is convenient for logging and
    for tests that record the full notification sequence.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[Type[CircuitEvent], List[Handler]] = {}
        self._catch_all: List[Handler] = []

    def subscribe(self, event_type: Type[TEvent], handler: Callable[[TEvent], None]) -> Callable[[], None]:
        """
        Registers `handler` for events of exactly `event_type`.

        Returns:
            A callable that removes the subscription when invoked.
        """
        if not (isinstance(event_type, type) and issubclass(event_type, CircuitEvent)):
            raise TypeError(f"Can only subscribe to CircuitEvent subclasses, got {event_type!r}.")
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe():
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)
        return unsubscribe

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        """Registers `handler` for every event published on this bus."""
        with self._lock:
            self._catch_all.append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._catch_all:
                    self._catch_all.remove(handler)
        return unsubscribe

    def publish(self, event: CircuitEvent) -> None:
        """Delivers `event` to its subscribers on the calling thread."""
        with self._lock:
            # Snapshot so handlers may (un)subscribe while being notified.
            handlers = list(self._handlers.get(type(event), [])) + list(self._catch_all)
        logger.debug(f"Publishing {type(event).__name__} to {len(handlers)} handler(s).")
        for handler in handlers:
            handler(event)

    def handler_count(self, event_type: Optional[Type[CircuitEvent]] = None) -> int:
        with self._lock:
            if event_type is None:
                return sum(len(h) for h in self._handlers.values()) + len(self._catch_all)
            return len(self._handlers.get(event_type, []))
