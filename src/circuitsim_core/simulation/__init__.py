# src/circuitsim_core/simulation/__init__.py
from .exceptions import SingularMatrixError, SolverInputError
from .config import ConfigParsingError, SimulatorConfig, load_simulator_config, load_simulator_config_file
from .results import SolveResult, SolveStatus
from .solver import MatrixSolver
from .assembly import NodeIndexMap
from .simulator import Simulator, SimulatorState, run_simulation

__all__ = [
    # Exceptions
    "SingularMatrixError",
    "SolverInputError",
    "ConfigParsingError",
    # Configuration
    "SimulatorConfig",
    "load_simulator_config",
    "load_simulator_config_file",
    # Core Classes
    "MatrixSolver",
    "NodeIndexMap",
    "Simulator",
    "SimulatorState",
    "SolveResult",
    "SolveStatus",
    "run_simulation",
]
