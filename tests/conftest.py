# tests/conftest.py
import pytest

from circuitsim_core import (
    CircuitGraph, Simulator, SimulatorConfig, Resistor, LED, LEDColor, DriverPin, PinMode,
)


class FakeClock:
    """A manually advanced monotonic clock for throttling tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class EventRecorder:
    """Collects every event published on a bus, in order."""

    def __init__(self, bus):
        self.events = []
        self._unsubscribe = bus.subscribe_all(self.events.append)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]

    def types(self):
        return [type(e) for e in self.events]

    def clear(self):
        self.events.clear()

    def close(self):
        self._unsubscribe()


@pytest.fixture
def graph():
    return CircuitGraph()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder(graph):
    rec = EventRecorder(graph.events)
    yield rec
    rec.close()


@pytest.fixture
def simulator(graph, clock):
    # A long update interval keeps deferred resolves from firing during a test.
    sim = Simulator(graph, SimulatorConfig(min_update_interval_s=10.0), clock=clock)
    yield sim
    sim.close()


def build_led_circuit(graph, color=LEDColor.RED, resistance="220 ohm", high=True):
    """
    Pin 13 -> R -> LED -> GND

    Returns (pin, resistor, led). The pin is in OUTPUT mode, driven HIGH unless
    `high` is False.
    """
    pin = DriverPin(pin_number=13, mode=PinMode.OUTPUT, name="D13")
    resistor = Resistor(resistance, name="R1")
    led = LED(color=color, name="LED1")

    pin.digital_write(high)
    assert graph.connect_components(pin, 0, resistor, 0)
    assert graph.connect_components(resistor, 1, led, 0)
    assert graph.connect_component_to_node(led, 1, graph.ground_id)
    return pin, resistor, led


@pytest.fixture
def led_circuit(graph):
    return build_led_circuit(graph)
