# src/circuitsim_core/__init__.py
import logging
from .log_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)
logger.info("CircuitSim Core package initialized.")

from .units import ureg, pint, Quantity
from .constants import GROUND_INDEX
from .events import (
    EventBus, CircuitEvent, TopologyChanged, ComponentChanged,
    SimulationStarted, SimulationStopped, SimulationReset,
    StepCompleted, ConvergenceAchieved, ConvergenceFailed, SolverError,
    ComponentStateChanged, OverloadDetected,
)
from .data_structures import Node, Connection
from .components import (
    ComponentBase, ComponentKind, PinMode, Resistor, Wire, LED, LEDColor, DriverPin, SensePin,
)
from .circuit_graph import CircuitGraph
from .simulation import (
    Simulator, SimulatorConfig, SimulatorState, MatrixSolver, SolveResult, SolveStatus,
    load_simulator_config, load_simulator_config_file, run_simulation,
)
from .errors import CircuitSimError, SimulationRunError, TopologyError

__all__ = [
    # Units
    "ureg", "pint", "Quantity",
    "GROUND_INDEX",
    # Events
    "EventBus", "CircuitEvent", "TopologyChanged", "ComponentChanged",
    "SimulationStarted", "SimulationStopped", "SimulationReset",
    "StepCompleted", "ConvergenceAchieved", "ConvergenceFailed", "SolverError",
    "ComponentStateChanged", "OverloadDetected",
    # Data Structures
    "Node", "Connection", "CircuitGraph",
    # Components
    "ComponentBase", "ComponentKind", "PinMode",
    "Resistor", "Wire", "LED", "LEDColor", "DriverPin", "SensePin",
    # Simulation
    "Simulator", "SimulatorConfig", "SimulatorState", "MatrixSolver",
    "SolveResult", "SolveStatus",
    "load_simulator_config", "load_simulator_config_file", "run_simulation",
    # Top-Level Errors (Actionable Diagnostics)
    "CircuitSimError", "SimulationRunError", "TopologyError",
]
