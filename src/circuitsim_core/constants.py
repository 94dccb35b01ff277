# src/circuitsim_core/constants.py
import logging

logger = logging.getLogger(__name__)

# --- Numerical Constants for the Solver ---

#: Sentinel index meaning "the ground node" in solver calls. Ground never owns a
#: matrix row, so any stamp addressed to it only touches the other node.
GROUND_INDEX: int = -1

#: Conductances, currents and pivots below this magnitude are treated as zero.
#: Stamps smaller than this are skipped so they cannot amplify round-off noise.
STABILITY_EPSILON: float = 1.0e-10

#: Ratio of the largest to the smallest non-zero matrix magnitude above which
#: `MatrixSolver.is_valid()` reports the system as ill-conditioned.
MAX_CONDITION_ESTIMATE: float = 1.0e12

#: Largest matrix dimension for which `is_valid()` uses the determinant check.
DETERMINANT_CHECK_MAX_DIMENSION: int = 4

# --- Component Model Constants ---

#: Floor resistance used for ideal (zero-resistance) elements such as wires.
#: Value: 1 micro-ohm (1e6 Siemens).
IDEAL_RESISTANCE_OHM: float = 1.0e-6

#: A one-terminal output pin only acts as a fixed-voltage source above this
#: commanded voltage; below it the pin is stamped as a conductance to ground.
SOURCE_VOLTAGE_THRESHOLD: float = 0.01

# --- Simulator Defaults ---

DEFAULT_MAX_ITERATIONS: int = 100
DEFAULT_CONVERGENCE_TOLERANCE: float = 1.0e-6
DEFAULT_TIME_STEP_S: float = 1.0e-3
DEFAULT_MIN_UPDATE_INTERVAL_S: float = 1.0e-2

logger.debug("Defined core constants: GROUND_INDEX, STABILITY_EPSILON, IDEAL_RESISTANCE_OHM")
