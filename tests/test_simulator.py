# tests/test_simulator.py
import threading
import time

import pytest

from circuitsim_core import (
    CircuitGraph, ComponentStateChanged, ConvergenceAchieved, ConvergenceFailed, DriverPin, LED,
    LEDColor, OverloadDetected, PinMode, Resistor, SimulationReset, SimulationRunError,
    SimulationStarted, SimulationStopped, Simulator, SimulatorConfig, SimulatorState, SolveStatus,
    SolverError, StepCompleted, run_simulation,
)

from conftest import EventRecorder, build_led_circuit

RED_LED_CURRENT = (5.0 - 1.8) / (220.0 + 25.0)


class TestSteadyState:
    """Verifies solved operating points of small reference circuits."""

    def test_led_driven_high_lights_up(self, graph, simulator, led_circuit):
        """
        Pin(5 V) -- 220 ohm -- red LED -- GND settles where
        5 = I * 220 + (1.8 + 25 * I).
        """
        pin, resistor, led = led_circuit
        result = simulator.solve()

        assert result.status is SolveStatus.CONVERGED
        assert result
        assert led.is_on
        assert led.get_current() == pytest.approx(RED_LED_CURRENT, rel=1e-3)
        assert led.brightness == pytest.approx(RED_LED_CURRENT / 0.02, rel=1e-3)
        assert resistor.get_voltage() == pytest.approx(220.0 * RED_LED_CURRENT, rel=1e-3)
        assert pin.get_current() == pytest.approx(RED_LED_CURRENT, rel=1e-3)
        assert pin.get_voltage() == pytest.approx(5.0)
        assert not led.is_overloaded

        anode = led.get_node(0)
        assert simulator.get_node_voltage(anode) == pytest.approx(1.8 + 25.0 * RED_LED_CURRENT, rel=1e-3)
        assert graph.get_node(pin.get_node(0)).voltage == pytest.approx(5.0)

    def test_led_before_resistor(self, graph, simulator):
        """Pin -> LED -> 220 ohm -> GND settles at the same current as the resistor-first chain."""
        pin = DriverPin(pin_number=13, mode=PinMode.OUTPUT)
        pin.digital_write(True)
        led = LED(LEDColor.RED)
        resistor = Resistor("220 ohm")
        graph.connect_components(pin, 0, led, 0)
        graph.connect_components(led, 1, resistor, 0)
        graph.connect_component_to_node(resistor, 1, graph.ground_id)

        assert simulator.solve().converged
        assert led.is_on
        assert led.brightness > 0.0
        assert led.get_current() == pytest.approx(RED_LED_CURRENT, rel=1e-3)

        pin.digital_write(False)
        assert simulator.step().converged
        assert not led.is_on
        assert led.brightness == 0.0

    @pytest.mark.parametrize("color", [LEDColor.GREEN, LEDColor.YELLOW, LEDColor.BLUE])
    def test_led_colors(self, graph, simulator, color):
        _, _, led = build_led_circuit(graph, color=color)
        assert simulator.solve().converged
        expected = (5.0 - color.forward_voltage) / 245.0
        assert led.is_on
        assert led.get_current() == pytest.approx(expected, rel=1e-3)

    def test_led_driven_low_stays_dark(self, graph, simulator):
        pin, _, led = build_led_circuit(graph, high=False)
        result = simulator.solve()
        assert result.converged
        assert result.iterations == 1
        assert not led.is_on
        assert led.brightness == 0.0
        assert pin.get_current() == pytest.approx(0.0)

    def test_ground_reads_zero(self, graph, simulator, led_circuit):
        simulator.solve()
        assert graph.ground_node.voltage == 0.0
        assert simulator.get_node_voltage(graph.ground_id) == 0.0

    def test_second_solve_converges_immediately(self, simulator, led_circuit):
        first = simulator.solve()
        assert first.iterations > 1
        second = simulator.solve()
        assert second.converged
        assert second.iterations == 1
        assert simulator.iteration_count == 1

    def test_wire_joins_two_nodes(self, graph, simulator):
        pin = DriverPin(pin_number=13, mode=PinMode.OUTPUT)
        pin.digital_write(True)
        load = Resistor("1 kohm")
        a = graph.create_node()
        b = graph.create_node()
        graph.connect_component_to_node(pin, 0, a.id)
        graph.connect_component_to_node(load, 0, b.id)
        graph.connect_component_to_node(load, 1, graph.ground_id)
        wire = graph.add_wire(a.id, b.id)

        result = simulator.solve()
        assert result.converged
        assert result.iterations == 2
        assert simulator.get_node_voltage(b.id) == pytest.approx(5.0)
        assert load.get_current() == pytest.approx(5e-3)
        assert wire.get_current() == pytest.approx(5e-3, rel=1e-4)

    @pytest.mark.parametrize("load_ohm, expected_v, expected_high", [
        (25e3, 5.0 / 3.0, False),
        (150e3, 3.75, True),
    ])
    def test_pullup_input(self, graph, simulator, load_ohm, expected_v, expected_high):
        pin = DriverPin(pin_number=2, mode=PinMode.INPUT_PULLUP)
        load = Resistor(load_ohm)
        graph.connect_components(pin, 0, load, 0)
        graph.connect_component_to_node(load, 1, graph.ground_id)

        assert simulator.solve().converged
        assert pin.read() == pytest.approx(expected_v, rel=1e-6)
        assert pin.digital_read() is expected_high
        assert pin.get_current() == pytest.approx((5.0 - expected_v) / 50e3, rel=1e-6)

    def test_unconnected_pullup_reads_supply(self, graph, simulator):
        pin = DriverPin(pin_number=2, mode=PinMode.INPUT_PULLUP)
        node = graph.create_node()
        graph.connect_component_to_node(pin, 0, node.id)
        assert simulator.solve().converged
        assert pin.read() == pytest.approx(5.0)
        assert pin.digital_read()

    def test_open_components_read_zero(self, graph, simulator, led_circuit):
        loose = Resistor(100.0)
        graph.add_component(loose)
        loose.update_state(1.0, 0.01)
        simulator.solve()
        assert loose.get_voltage() == 0.0
        assert loose.get_current() == 0.0

    def test_component_state(self, simulator, led_circuit):
        _, _, led = led_circuit
        simulator.solve()
        state = simulator.get_component_state(led)
        assert state['is_on'] is True
        assert state['overloaded'] is False
        assert state['current'] == pytest.approx(RED_LED_CURRENT, rel=1e-3)
        assert simulator.get_branch_current(led) == state['current']


class TestFailures:

    def test_iteration_budget_exhausted(self, graph, clock, led_circuit, recorder):
        simulator = Simulator(graph, SimulatorConfig(max_iterations=2), clock=clock)
        result = simulator.solve()
        assert result.status is SolveStatus.NOT_CONVERGED
        assert result.iterations == 2
        assert not result
        assert recorder.of_type(ConvergenceFailed) == [ConvergenceFailed(iterations=2)]
        simulator.close()

    def test_floating_net_reports_solver_error(self, graph, simulator, recorder):
        r1, r2 = Resistor(100.0), Resistor(100.0)
        graph.connect_components(r1, 1, r2, 0)
        result = simulator.solve()
        assert result.status is SolveStatus.SOLVER_ERROR
        assert "Singular matrix" in result.error
        assert len(recorder.of_type(SolverError)) == 1
        assert not recorder.of_type(StepCompleted)
        assert simulator.simulation_time == 0.0

    def test_empty_circuit_cannot_initialize(self, graph, simulator, recorder):
        assert not simulator.initialize()
        assert simulator.solve().status is SolveStatus.NOT_INITIALIZED
        assert not simulator.start()
        assert simulator.state is SimulatorState.UNINITIALIZED
        assert recorder.of_type(SolverError)

    def test_run_simulation_raises_for_empty_circuit(self):
        with pytest.raises(SimulationRunError, match="Simulation Setup Error"):
            run_simulation(CircuitGraph())

    def test_run_simulation_raises_for_singular_circuit(self, graph):
        r1, r2 = Resistor(100.0), Resistor(100.0)
        graph.connect_components(r1, 1, r2, 0)
        with pytest.raises(SimulationRunError, match="Singular Matrix Encountered"):
            run_simulation(graph)

    def test_run_simulation_returns_result(self, graph, led_circuit):
        result = run_simulation(graph, SimulatorConfig(solver_strategy="elimination"))
        assert result.converged
        assert led_circuit[2].is_on
        # The temporary simulator detached itself from the bus.
        assert graph.events.handler_count() == 0


class TestNotifications:

    def test_event_order_of_a_resolve(self, simulator, led_circuit, recorder):
        pin, resistor, led = led_circuit
        recorder.clear()
        result = simulator.solve()

        assert recorder.types() == [
            ComponentStateChanged, ComponentStateChanged, ComponentStateChanged,
            ConvergenceAchieved, StepCompleted,
        ]
        changed = recorder.of_type(ComponentStateChanged)
        assert [e.component_id for e in changed] == [pin.instance_id, resistor.instance_id, led.instance_id]
        assert changed[2].state['is_on'] is True
        assert recorder.events[3] == ConvergenceAchieved(iterations=result.iterations)
        assert recorder.events[4].time == pytest.approx(simulator.config.time_step_s)

    def test_unchanged_resolve_publishes_no_state_changes(self, simulator, led_circuit, recorder):
        simulator.solve()
        recorder.clear()
        simulator.solve()
        assert not recorder.of_type(ComponentStateChanged)

    def test_led_turning_off_is_published(self, graph, simulator, led_circuit, recorder):
        pin, _, led = led_circuit
        simulator.solve()
        recorder.clear()
        pin.digital_write(False)
        simulator.step()
        changed = {e.component_id: e for e in recorder.of_type(ComponentStateChanged)}
        assert changed[led.instance_id].state == {'is_on': False, 'brightness': 0.0}

    def test_overload_detected_once(self, graph, simulator, recorder):
        pin = DriverPin(pin_number=13, mode=PinMode.OUTPUT)
        pin.digital_write(True)
        led = LED(LEDColor.RED)
        graph.connect_components(pin, 0, led, 0)
        graph.connect_component_to_node(led, 1, graph.ground_id)

        assert simulator.solve().converged
        assert led.get_current() == pytest.approx(3.2 / 25.0, rel=1e-3)
        overloaded = {e.component_id for e in recorder.of_type(OverloadDetected)}
        assert overloaded == {pin.instance_id, led.instance_id}

        recorder.clear()
        simulator.solve()
        assert not recorder.of_type(OverloadDetected)

    def test_simulation_time_advances_per_resolve(self, simulator, led_circuit):
        simulator.solve()
        simulator.solve()
        assert simulator.simulation_time == pytest.approx(2 * simulator.config.time_step_s)

    def test_reentrant_solve_is_skipped(self, graph, simulator, led_circuit):
        nested = []
        graph.events.subscribe(StepCompleted, lambda e: nested.append(simulator.solve()))
        assert simulator.solve().converged
        assert [r.status for r in nested] == [SolveStatus.SKIPPED]

    def test_start_from_handler_does_not_resolve_again(self, graph, simulator, led_circuit, recorder):
        graph.events.subscribe(StepCompleted, lambda e: simulator.start())

        worker = threading.Thread(target=simulator.step, daemon=True)
        worker.start()
        worker.join(3.0)

        assert not worker.is_alive()
        assert simulator.is_running
        assert simulator.state is SimulatorState.IDLE
        assert len(recorder.of_type(SimulationStarted)) == 1
        assert len(recorder.of_type(StepCompleted)) == 1


class TestLifecycle:

    def test_start_and_stop(self, simulator, led_circuit, recorder):
        _, _, led = led_circuit
        recorder.clear()
        assert simulator.state is SimulatorState.UNINITIALIZED
        assert simulator.start()
        assert simulator.is_running
        assert simulator.state is SimulatorState.IDLE
        assert led.is_on
        assert recorder.types()[0] is SimulationStarted

        simulator.stop()
        assert not simulator.is_running
        assert simulator.state is SimulatorState.STOPPED
        assert recorder.types()[-1] is SimulationStopped

    def test_topology_change_requires_reinitialization(self, graph, simulator, led_circuit):
        simulator.solve()
        assert simulator.is_initialized
        graph.create_node()
        assert not simulator.is_initialized
        assert simulator.solve().converged
        assert simulator.is_initialized

    def test_reinitialization_restarts_simulated_time(self, graph, simulator, led_circuit):
        simulator.solve()
        simulator.solve()
        graph.create_node()
        simulator.solve()
        assert simulator.simulation_time == pytest.approx(simulator.config.time_step_s)

    def test_reset(self, graph, simulator, led_circuit, recorder):
        pin, _, led = led_circuit
        simulator.solve()
        simulator.reset()

        assert not led.is_on
        assert pin.output_voltage == 0.0
        assert simulator.simulation_time == 0.0
        assert simulator.iteration_count == 0
        assert not simulator.is_initialized
        assert simulator.state is SimulatorState.UNINITIALIZED
        assert all(node.voltage == 0.0 for node in graph.nodes.values())
        assert recorder.types()[-1] is SimulationReset

    def test_node_index_map(self, graph, simulator, led_circuit):
        pin, resistor, led = led_circuit
        orphan = graph.create_node()
        simulator.initialize()
        index_map = simulator.node_index_map

        assert index_map.dimension == 2
        assert index_map.full_index(graph.ground_id) == 0
        assert index_map.solver_index(graph.ground_id) == -1
        assert orphan.id not in index_map
        first, second = sorted([pin.get_node(0), led.get_node(0)])
        assert index_map.solver_index(first) == 0
        assert index_map.solver_index(second) == 1
        assert index_map.node_at(1) == second
        assert simulator.solver.dimension == 2


class TestThrottling:
    """
    VERIFIES: Update requests while running are coalesced: one immediate
              resolve, then at most one deferred resolve per interval.
    """

    def test_rapid_triggers_collapse_into_one_pending_update(self, simulator, led_circuit, recorder, clock):
        simulator.start()
        assert len(recorder.of_type(StepCompleted)) == 1

        simulator.trigger_update()
        assert simulator.has_pending_update
        simulator.trigger_update()
        simulator.trigger_update()
        assert len(recorder.of_type(StepCompleted)) == 1

        simulator.stop()
        assert not simulator.has_pending_update

    def test_trigger_after_interval_resolves_immediately(self, simulator, led_circuit, recorder, clock):
        simulator.start()
        clock.advance(20.0)
        simulator.trigger_update()
        assert len(recorder.of_type(StepCompleted)) == 2
        assert not simulator.has_pending_update

    def test_component_change_triggers_resolve_while_running(self, graph, simulator, led_circuit, clock):
        pin, _, led = led_circuit
        simulator.start()
        assert led.is_on

        pin.digital_write(False)
        clock.advance(20.0)
        graph.notify_component_changed(pin)
        assert not led.is_on

    def test_no_resolve_after_stop(self, graph, simulator, led_circuit, recorder, clock):
        pin, _, led = led_circuit
        simulator.start()
        simulator.stop()
        pin.digital_write(False)
        clock.advance(20.0)
        graph.notify_component_changed(pin)
        assert led.is_on
        assert len(recorder.of_type(StepCompleted)) == 1

    def test_topology_change_while_running_resolves(self, graph, simulator, led_circuit, recorder, clock):
        simulator.start()
        clock.advance(20.0)
        graph.create_node()
        assert simulator.is_initialized
        assert len(recorder.of_type(StepCompleted)) == 2

    def test_trigger_during_resolve_is_dropped(self, graph, simulator, led_circuit, recorder, clock):
        pin, _, _ = led_circuit
        nested = []

        def retrigger(event):
            nested.append(event)
            clock.advance(20.0)
            graph.notify_component_changed(pin)

        graph.events.subscribe(StepCompleted, retrigger)
        simulator.start()
        assert len(nested) == 1
        assert not simulator.has_pending_update

        clock.advance(20.0)
        simulator.trigger_update()
        assert len(nested) == 2
        assert len(recorder.of_type(StepCompleted)) == 2
        assert not simulator.has_pending_update

    def test_deferred_update_fires(self, graph, led_circuit):
        simulator = Simulator(graph, SimulatorConfig(min_update_interval_s=0.05))
        recorder = EventRecorder(graph.events)
        try:
            simulator.start()
            simulator.trigger_update()
            assert simulator.has_pending_update

            deadline = time.monotonic() + 2.0
            while len(recorder.of_type(StepCompleted)) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert len(recorder.of_type(StepCompleted)) == 2
            assert not simulator.has_pending_update
        finally:
            simulator.close()
            recorder.close()
