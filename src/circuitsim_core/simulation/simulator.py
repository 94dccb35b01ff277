# src/circuitsim_core/simulation/simulator.py
"""
The nonlinear iterative simulator.

One resolve repeats {assemble -> linear solve -> push voltages and currents
into every component -> convergence test} until no component's voltage or
current moves by more than the tolerance, or until the iteration budget is
spent. Components with state-dependent resistance (LEDs) recompute it inside
`update_state`, so each iteration linearizes around the previous one.

Resolves are single-flight. A lock makes each resolve atomic; a trigger that
arrives while a resolve is executing is dropped; triggers that arrive faster
than the minimum update interval collapse into one deferred resolve on a
`threading.Timer`.
"""
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..circuit_graph import CircuitGraph
from ..components.base import ComponentBase
from ..components.capabilities import IOverloadMonitor, IStateReporter
from ..errors import SimulationRunError, format_diagnostic_report
from ..events import (
    ComponentChanged,
    ComponentStateChanged,
    ConvergenceAchieved,
    ConvergenceFailed,
    OverloadDetected,
    SimulationReset,
    SimulationStarted,
    SimulationStopped,
    SolverError,
    StepCompleted,
    TopologyChanged,
)
from .assembly import NodeIndexMap, get_stamp, solved_values, stamp_component, terminal_indices
from .config import SimulatorConfig
from .results import SolveResult, SolveStatus
from .solver import MatrixSolver

logger = logging.getLogger(__name__)

# Thresholds for publishing a component state change.
STATE_VOLTAGE_THRESHOLD: float = 0.01
STATE_CURRENT_THRESHOLD: float = 1.0e-3
STATE_VALUE_THRESHOLD: float = 0.01


class SimulatorState(Enum):
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZED = "INITIALIZED"
    RUNNING = "RUNNING"
    IDLE = "IDLE"
    STOPPED = "STOPPED"

    def __str__(self):
        return self.value


def _state_differs(old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
    if old.keys() != new.keys():
        return True
    for key, value in new.items():
        previous = old[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            if value != previous:
                return True
        elif not isinstance(previous, (int, float)) or abs(value - previous) > STATE_VALUE_THRESHOLD:
            return True
    return False


class Simulator:
    """
    Drives a `CircuitGraph` to a steady-state solution and keeps it solved
    while running.

    The simulator subscribes to the graph's event bus: a `TopologyChanged`
    forces re-initialization (and an update when running), a `ComponentChanged`
    triggers an update when running. All notifications are published on the
    same bus.
    """

    def __init__(self, graph: CircuitGraph, config: Optional[SimulatorConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.graph = graph
        self.events = graph.events
        self.config = config or SimulatorConfig()
        self._clock = clock

        self._solver = MatrixSolver(strategy=self.config.solver_strategy, epsilon=self.config.epsilon)
        self._index_map: Optional[NodeIndexMap] = None
        self._state = SimulatorState.UNINITIALIZED
        self._initialized = False
        self._iteration_count = 0
        self._simulation_time = 0.0

        # Convergence baseline, keyed by component id.
        self._previous: Dict[str, Tuple[float, float]] = {}
        # Last state published per component, for change detection.
        self._published: Dict[str, Tuple[float, float, Dict[str, Any]]] = {}

        self._resolve_lock = threading.Lock()
        self._flag_lock = threading.Lock()
        self._is_updating = False
        self._updating_thread: Optional[int] = None
        self._update_pending = False
        self._timer: Optional[threading.Timer] = None
        self._last_update: Optional[float] = None

        self._unsubscribers = [
            self.events.subscribe(TopologyChanged, self._on_topology_changed),
            self.events.subscribe(ComponentChanged, self._on_component_changed),
        ]
        logger.debug(f"Simulator attached to {graph!r} with {self.config}")

    # --- Properties ---

    @property
    def state(self) -> SimulatorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in (SimulatorState.RUNNING, SimulatorState.IDLE)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def iteration_count(self) -> int:
        return self._iteration_count

    @property
    def simulation_time(self) -> float:
        return self._simulation_time

    @property
    def node_index_map(self) -> Optional[NodeIndexMap]:
        return self._index_map

    @property
    def solver(self) -> MatrixSolver:
        return self._solver

    @property
    def has_pending_update(self) -> bool:
        return self._update_pending

    # --- Lifecycle ---

    def initialize(self) -> bool:
        """
        Indexes the graph's nodes, sizes the solver and snapshots every
        component's present voltage and current as the convergence baseline.
        Fails when there is no node to solve for.
        """
        index_map = NodeIndexMap(self.graph)
        if index_map.dimension == 0:
            message = "Circuit has no nodes to simulate."
            logger.error(message)
            self._initialized = False
            self.events.publish(SolverError(message=message))
            return False

        self._index_map = index_map
        self._solver.set_dimension(index_map.dimension)
        self._iteration_count = 0
        self._simulation_time = 0.0
        self._previous = {
            c.instance_id: (c.get_voltage(), c.get_current()) for c in self.graph.iter_components()
        }
        self._initialized = True
        if self._state is SimulatorState.UNINITIALIZED:
            self._state = SimulatorState.INITIALIZED
        logger.info(f"Simulator initialized: {index_map.dimension} unknown node(s), "
                    f"{len(self.graph.components)} component(s).")
        return True

    def start(self) -> bool:
        """
        Initializes if needed, marks the simulator running and resolves immediately.
        Called from a handler inside a resolve, it marks the simulator running
        without resolving again.
        """
        if self.is_running:
            logger.debug("Simulator already running; start() ignored.")
            return True
        if not self._initialized and not self.initialize():
            return False
        self._state = SimulatorState.IDLE
        logger.info("Simulation started.")
        self.events.publish(SimulationStarted())
        self._do_update()
        return True

    def stop(self) -> None:
        """Stops automatic resolves. A resolve already executing completes."""
        with self._flag_lock:
            if not self.is_running:
                return
            self._state = SimulatorState.STOPPED
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._update_pending = False
        logger.info("Simulation stopped.")
        self.events.publish(SimulationStopped())

    def step(self) -> SolveResult:
        """Performs exactly one resolve, whether or not the simulator is running."""
        return self.solve()

    def reset(self) -> None:
        """Restores every component's power-on state and clears the simulator's bookkeeping."""
        if self._is_reentrant():
            logger.error("reset() called from inside a resolve; ignored.")
            return
        with self._resolve_lock:
            for component in self.graph.iter_components():
                component.reset()
            self._initialized = False
            self._iteration_count = 0
            self._simulation_time = 0.0
            self._previous.clear()
            self._published.clear()
            self._solver.clear()
            for node in self.graph.nodes.values():
                node.voltage = 0.0
            if not self.is_running:
                self._state = SimulatorState.UNINITIALIZED
        logger.info("Simulation reset.")
        self.events.publish(SimulationReset())

    def close(self) -> None:
        """Stops the simulator and detaches it from the graph's event bus."""
        self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # --- Triggers ---

    def _on_topology_changed(self, event: TopologyChanged) -> None:
        logger.debug(f"Topology changed ({event.reason}); re-initialization required.")
        self._initialized = False
        if self.is_running:
            self.trigger_update()

    def _on_component_changed(self, event: ComponentChanged) -> None:
        if self.is_running:
            self.trigger_update()

    def trigger_update(self) -> None:
        """
        Requests a resolve. Dropped while a resolve is executing; deferred to a
        single timer when the previous resolve was less than the minimum update
        interval ago.
        """
        with self._flag_lock:
            if self._is_updating:
                logger.debug("Ignoring update request during a resolve.")
                return
            if self._last_update is not None:
                elapsed = self._clock() - self._last_update
                interval = self.config.min_update_interval_s
                if elapsed < interval:
                    if not self._update_pending:
                        delay = max(interval - elapsed, 1e-3)
                        self._timer = threading.Timer(delay, self._do_update)
                        self._timer.daemon = True
                        self._update_pending = True
                        self._timer.start()
                        logger.debug(f"Throttling update; scheduled in {delay * 1e3:.1f} ms.")
                    return
        self._do_update()

    def _do_update(self) -> None:
        if self._is_reentrant():
            logger.debug("Resolve requested from inside a resolve; ignored.")
            return
        with self._resolve_lock:
            with self._flag_lock:
                self._is_updating = True
                self._updating_thread = threading.get_ident()
                self._update_pending = False
                self._timer = None
                self._last_update = self._clock()
                should_run = self.is_running
                if should_run:
                    self._state = SimulatorState.RUNNING
            try:
                if should_run:
                    self._resolve()
            finally:
                with self._flag_lock:
                    self._is_updating = False
                    self._updating_thread = None
                    if self._state is SimulatorState.RUNNING:
                        self._state = SimulatorState.IDLE

    def _is_reentrant(self) -> bool:
        return self._updating_thread == threading.get_ident()

    # --- Resolve ---

    def solve(self) -> SolveResult:
        """Runs one full nonlinear resolve under the resolve lock."""
        if self._is_reentrant():
            logger.error("solve() called from inside a resolve; ignored.")
            return SolveResult(SolveStatus.SKIPPED, 0, "re-entrant solve request")
        with self._resolve_lock:
            with self._flag_lock:
                self._is_updating = True
                self._updating_thread = threading.get_ident()
            try:
                return self._resolve()
            finally:
                with self._flag_lock:
                    self._is_updating = False
                    self._updating_thread = None

    def _resolve(self) -> SolveResult:
        if not self._initialized and not self.initialize():
            return SolveResult(SolveStatus.NOT_INITIALIZED, 0, "Circuit has no nodes to simulate.")

        iterations = 0
        converged = False
        while iterations < self.config.max_iterations and not converged:
            if not self._iterate():
                message = f"Failed to solve circuit equations: {self._solver.last_error}"
                self._iteration_count = iterations
                self.events.publish(SolverError(message=message))
                return SolveResult(SolveStatus.SOLVER_ERROR, iterations, message)
            converged = self._has_converged()
            iterations += 1
            logger.debug(f"Iteration {iterations}: {'converged' if converged else 'not converged'}")

        self._iteration_count = iterations
        self._simulation_time += self.config.time_step_s
        self._publish_component_changes()

        if converged:
            logger.debug(f"Converged after {iterations} iteration(s).")
            self.events.publish(ConvergenceAchieved(iterations=iterations))
        else:
            logger.warning(f"Failed to converge after {iterations} iteration(s).")
            self.events.publish(ConvergenceFailed(iterations=iterations))
        self.events.publish(StepCompleted(iterations=iterations, time=self._simulation_time))
        return SolveResult(SolveStatus.CONVERGED if converged else SolveStatus.NOT_CONVERGED, iterations)

    def _iterate(self) -> bool:
        """One assemble/solve/update pass. Returns False, changing nothing, if the solve fails."""
        index_map = self._index_map
        self._solver.clear()

        stamped: List[Tuple[ComponentBase, List[int], Any]] = []
        open_components: List[ComponentBase] = []
        for component in self.graph.iter_components():
            indices = terminal_indices(component, index_map)
            if indices is None:
                open_components.append(component)
                continue
            stamp = get_stamp(component)
            stamp_component(self._solver, indices, component, stamp)
            stamped.append((component, indices, stamp))

        if not self._solver.solve():
            return False

        for component, indices, stamp in stamped:
            voltage, current = solved_values(self._solver, indices, stamp)
            component.update_state(voltage, current)
        for component in open_components:
            # An open terminal carries no current.
            component.update_state(0.0, 0.0)

        self.graph.ground_node.voltage = 0.0
        for node_id, row in index_map.rows():
            node = self.graph.get_node(node_id)
            if node is not None:
                node.voltage = self._solver.get_node_voltage(row)
        return True

    def _has_converged(self) -> bool:
        """
        True when no component's voltage or current moved by more than the
        tolerance since the previous iteration. A component without a baseline
        is not converged. Every baseline is refreshed.
        """
        tolerance = self.config.convergence_tolerance
        converged = True
        for component in self.graph.iter_components():
            current_values = (component.get_voltage(), component.get_current())
            previous = self._previous.get(component.instance_id)
            if (previous is None
                    or abs(current_values[0] - previous[0]) > tolerance
                    or abs(current_values[1] - previous[1]) > tolerance):
                converged = False
            self._previous[component.instance_id] = current_values
        return converged

    def _publish_component_changes(self) -> None:
        for component in self.graph.iter_components():
            reporter = component.get_capability(IStateReporter)
            state = reporter.get_state(component) if reporter else {}
            voltage, current = component.get_voltage(), component.get_current()
            last = self._published.get(component.instance_id)
            if (last is None
                    or abs(voltage - last[0]) > STATE_VOLTAGE_THRESHOLD
                    or abs(current - last[1]) > STATE_CURRENT_THRESHOLD
                    or _state_differs(last[2], state)):
                self._published[component.instance_id] = (voltage, current, dict(state))
                self.events.publish(ComponentStateChanged(
                    component_id=component.instance_id, voltage=voltage, current=current, state=dict(state),
                ))

            monitor = component.get_capability(IOverloadMonitor)
            if monitor is not None:
                notice = monitor.consume_overload_notice(component)
                if notice and monitor.is_overloaded(component):
                    self.events.publish(OverloadDetected(component_id=component.instance_id, reason=notice))

    # --- Read-back ---

    def get_node_voltage(self, node_id: int) -> float:
        node = self.graph.get_node(node_id)
        if node is None:
            logger.error(f"get_node_voltage: node {node_id} does not exist.")
            return 0.0
        return 0.0 if node.is_ground else node.voltage

    def get_branch_current(self, component: ComponentBase) -> float:
        return component.get_current()

    def get_component_state(self, component: ComponentBase) -> Dict[str, Any]:
        """Solved voltage and current plus the component's derived state and overload flag."""
        reporter = component.get_capability(IStateReporter)
        state = {'voltage': component.get_voltage(), 'current': component.get_current(),
                 'overloaded': component.is_overloaded}
        if reporter is not None:
            state.update(reporter.get_state(component))
        return state


def run_simulation(graph: CircuitGraph, config: Optional[SimulatorConfig] = None) -> SolveResult:
    """
    Solves `graph` once with a temporary simulator and returns the result.

    Convergence failure is returned as a NOT_CONVERGED result because the last
    iteration's values still stand. A circuit that cannot be solved at all
    raises `SimulationRunError` carrying a diagnostic report.

    Raises:
        SimulationRunError: if the circuit has no nodes or its system is singular.
    """
    simulator = Simulator(graph, config)
    try:
        result = simulator.solve()
    finally:
        simulator.close()

    if result.status in (SolveStatus.SOLVER_ERROR, SolveStatus.NOT_INITIALIZED):
        cause = simulator.solver.last_error
        if cause is not None:
            raise SimulationRunError(cause.get_diagnostic_report()) from cause
        raise SimulationRunError(format_diagnostic_report(
            error_type="Simulation Setup Error",
            details=result.error or "The circuit could not be simulated.",
            suggestion="Add components and connect them to nodes before simulating.",
            context={},
        ))
    return result
