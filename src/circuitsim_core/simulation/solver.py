# src/circuitsim_core/simulation/solver.py
"""
Dense nodal-analysis solver for ``G * V = I``.

The ground node never owns a row: it is addressed with the sentinel
`GROUND_INDEX` (-1), and any stamp touching it only updates the other node.

Stamps are accumulated in an unconstrained conductance matrix and injection
vector. Fixed-voltage constraints are kept separately and applied when the
system is assembled for a solve, by replacing the constrained row with an
identity row. Because the constrained row's own stamps are never overwritten,
the result does not depend on the order in which components were stamped, and
the current a voltage constraint must deliver into its node can be recovered
exactly from Kirchhoff's current law (`get_source_current`).

Known limitation: a voltage constraint is a forced row, not an auxiliary MNA
unknown. A source between two non-ground nodes forces the first node to the
source voltage and the second to 0 V.
"""
import logging
import warnings
from typing import Dict, Optional, Tuple

import numpy as np
import scipy.linalg

from ..constants import (
    DETERMINANT_CHECK_MAX_DIMENSION,
    GROUND_INDEX,
    MAX_CONDITION_ESTIMATE,
    STABILITY_EPSILON,
)
from .exceptions import SingularMatrixError, SolverInputError

logger = logging.getLogger(__name__)

SOLVER_STRATEGIES = ("direct", "elimination")


def factorize_and_solve(matrix: np.ndarray, rhs: np.ndarray, epsilon: float) -> np.ndarray:
    """
    Solves a dense system through LU factorization with partial pivoting.

    Raises:
        SingularMatrixError: if any pivot of U is below `epsilon` in magnitude.
    """
    with warnings.catch_warnings():
        # An exactly singular matrix is reported through the pivot check below.
        warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
        lu, piv = scipy.linalg.lu_factor(matrix, check_finite=True)
    pivots = np.abs(np.diag(lu))
    if np.any(pivots < epsilon):
        row = int(np.argmin(pivots))
        raise SingularMatrixError(
            details=f"LU pivot {pivots[row]:.3e} at row {row} is below the stability threshold {epsilon:.1e}.",
            dimension=matrix.shape[0],
        )
    return scipy.linalg.lu_solve((lu, piv), rhs, check_finite=False)


def gaussian_elimination(matrix: np.ndarray, rhs: np.ndarray, epsilon: float) -> np.ndarray:
    """
    Self-contained Gaussian elimination with partial pivoting followed by back
    substitution.

    Raises:
        SingularMatrixError: if no pivot above `epsilon` can be found for a column.
    """
    n = matrix.shape[0]
    a = np.array(matrix, dtype=float, copy=True)
    b = np.array(rhs, dtype=float, copy=True)

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(a[col:, col])))
        if abs(a[pivot_row, col]) < epsilon:
            raise SingularMatrixError(
                details=f"No usable pivot in column {col} (largest magnitude {abs(a[pivot_row, col]):.3e}).",
                dimension=n,
            )
        if pivot_row != col:
            a[[col, pivot_row]] = a[[pivot_row, col]]
            b[[col, pivot_row]] = b[[pivot_row, col]]
        factors = a[col + 1:, col] / a[col, col]
        a[col + 1:, col:] -= np.outer(factors, a[col, col:])
        b[col + 1:] -= factors * b[col]

    x = np.zeros(n, dtype=float)
    for row in range(n - 1, -1, -1):
        x[row] = (b[row] - a[row, row + 1:] @ x[row + 1:]) / a[row, row]
    return x


class MatrixSolver:
    """
    Assembles and solves the conductance system of the non-ground nodes.

    Public operations never raise for numerical problems: `solve()` returns
    False and keeps the diagnostic in `last_error`; out-of-range indices are
    logged and ignored (or read as 0 V).
    """

    def __init__(self, strategy: str = "direct", epsilon: float = STABILITY_EPSILON):
        if strategy not in SOLVER_STRATEGIES:
            raise ValueError(f"Unknown solver strategy '{strategy}'. Allowed: {list(SOLVER_STRATEGIES)}.")
        self.strategy = strategy
        self.epsilon = epsilon
        self._dimension = 0
        self._conductance = np.zeros((0, 0), dtype=float)
        self._injection = np.zeros(0, dtype=float)
        self._solution = np.zeros(0, dtype=float)
        self._forced: Dict[int, float] = {}
        self._branch_currents: Dict[Tuple[int, int], float] = {}
        self._is_solved = False
        self.last_error: Optional[SingularMatrixError] = None

    # --- Setup ---

    @property
    def dimension(self) -> int:
        return self._dimension

    def set_dimension(self, n: int) -> bool:
        """(Re)allocates a zeroed system for `n` non-ground nodes."""
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            error = SolverInputError(details=f"Invalid solver dimension {n!r}.", dimension=None)
            logger.error(error.get_diagnostic_report())
            return False
        self._dimension = n
        self.clear()
        logger.debug(f"Solver dimension set to {n}")
        return True

    def clear(self) -> None:
        """Zeroes the matrix, right-hand side and solution, and forgets recorded source currents."""
        n = self._dimension
        self._conductance = np.zeros((n, n), dtype=float)
        self._injection = np.zeros(n, dtype=float)
        self._solution = np.zeros(n, dtype=float)
        self._forced.clear()
        self._branch_currents.clear()
        self._is_solved = False

    def _in_range(self, index: int) -> bool:
        return 0 <= index < self._dimension

    def _check_index(self, index: int, operation: str) -> bool:
        if index == GROUND_INDEX or self._in_range(index):
            return True
        logger.error(f"{operation}: node index {index} is out of range for dimension {self._dimension}.")
        return False

    # --- Stamps ---

    def add_conductance(self, node_a: int, node_b: int, conductance: float) -> None:
        """Standard nodal stamp of a conductance between two nodes (or a node and ground)."""
        if conductance < self.epsilon:
            return
        if not (self._check_index(node_a, "add_conductance") and self._check_index(node_b, "add_conductance")):
            return
        if node_a == node_b:
            return
        if node_a != GROUND_INDEX:
            self._conductance[node_a, node_a] += conductance
        if node_b != GROUND_INDEX:
            self._conductance[node_b, node_b] += conductance
        if node_a != GROUND_INDEX and node_b != GROUND_INDEX:
            self._conductance[node_a, node_b] -= conductance
            self._conductance[node_b, node_a] -= conductance

    def add_current_source(self, node_a: int, node_b: int, current: float) -> None:
        """A current source driving `current` from `node_a` into `node_b`."""
        if abs(current) < self.epsilon:
            return
        if not (self._check_index(node_a, "add_current_source") and self._check_index(node_b, "add_current_source")):
            return
        if node_a != GROUND_INDEX:
            self._injection[node_a] -= current
        if node_b != GROUND_INDEX:
            self._injection[node_b] += current
        self._branch_currents[(node_a, node_b)] = current

    def set_node_voltage(self, node: int, voltage: float) -> None:
        """Forces `node` to `voltage`. The latest constraint on a node wins."""
        if node == GROUND_INDEX:
            logger.warning("set_node_voltage: the ground node is fixed at 0 V; constraint ignored.")
            return
        if not self._in_range(node):
            logger.error(f"set_node_voltage: node index {node} is out of range for dimension {self._dimension}.")
            return
        self._forced[node] = float(voltage)

    def add_voltage_source(self, node_a: int, node_b: int, voltage: float) -> None:
        """
        A voltage source of `voltage` from `node_b` to `node_a`. With one end on
        ground this is an exact constraint; between two non-ground nodes it
        forces `node_a` to `voltage` and `node_b` to 0 V.
        """
        if node_b == GROUND_INDEX:
            self.set_node_voltage(node_a, voltage)
        elif node_a == GROUND_INDEX:
            self.set_node_voltage(node_b, -voltage)
        elif self._in_range(node_a) and self._in_range(node_b):
            logger.warning(
                f"Voltage source between non-ground nodes {node_a} and {node_b}: "
                f"node {node_b} is forced to 0 V."
            )
            self.set_node_voltage(node_a, voltage)
            self.set_node_voltage(node_b, 0.0)
        else:
            logger.error(f"add_voltage_source: invalid node indices ({node_a}, {node_b}).")

    # --- Assembled system ---

    def _assemble(self) -> Tuple[np.ndarray, np.ndarray]:
        matrix = self._conductance.copy()
        rhs = self._injection.copy()
        for node, voltage in self._forced.items():
            matrix[node, :] = 0.0
            matrix[node, node] = 1.0
            rhs[node] = voltage
        return matrix, rhs

    @property
    def matrix(self) -> np.ndarray:
        """The system matrix with voltage constraints applied (a copy)."""
        return self._assemble()[0]

    @property
    def rhs(self) -> np.ndarray:
        return self._assemble()[1]

    @property
    def solution(self) -> np.ndarray:
        return self._solution.copy()

    @property
    def is_solved(self) -> bool:
        return self._is_solved

    def is_forced(self, node: int) -> bool:
        return node in self._forced

    # --- Solve ---

    def solve(self) -> bool:
        """Solves the assembled system. Returns False if it is singular."""
        self._is_solved = False
        self.last_error = None
        if self._dimension == 0:
            self.last_error = SingularMatrixError(details="The system has no unknowns to solve for.", dimension=0)
            logger.error(self.last_error.get_diagnostic_report())
            return False

        matrix, rhs = self._assemble()
        try:
            if self.strategy == "direct":
                solution = factorize_and_solve(matrix, rhs, self.epsilon)
            else:
                solution = gaussian_elimination(matrix, rhs, self.epsilon)
            if not np.all(np.isfinite(solution)):
                raise SingularMatrixError(details="The solve produced NaN/Inf values.", dimension=self._dimension)
        except SingularMatrixError as e:
            self.last_error = e
            logger.error(e.get_diagnostic_report())
            return False
        except ValueError as e:
            self.last_error = SingularMatrixError(
                details=f"The system could not be solved: {e}", dimension=self._dimension
            )
            logger.error(self.last_error.get_diagnostic_report())
            return False

        self._solution = solution
        self._is_solved = True
        logger.debug(f"Solved {self._dimension}x{self._dimension} system ({self.strategy}).")
        return True

    # --- Read-back ---

    def get_node_voltage(self, node: int) -> float:
        if node == GROUND_INDEX:
            return 0.0
        if not self._in_range(node):
            logger.error(f"get_node_voltage: node index {node} is out of range for dimension {self._dimension}.")
            return 0.0
        if not self._is_solved:
            logger.error(f"get_node_voltage: system is not solved; node {node} reads 0 V.")
            return 0.0
        return float(self._solution[node])

    def get_source_current(self, node: int) -> float:
        """
        The current a voltage constraint on `node` delivers into the node: the
        current leaving through the node's own stamps minus the current injected
        by sources. Zero for an unconstrained node.
        """
        if node not in self._forced or not self._is_solved:
            return 0.0
        return float(self._conductance[node, :] @ self._solution - self._injection[node])

    def get_branch_current(self, node_a: int, node_b: int) -> float:
        """
        The current from `node_a` to `node_b`: a recorded current source value,
        or the current derived from the stamped conductances and the solved
        voltages. Toward ground, only the node's conductances to ground count.
        """
        if (node_a, node_b) in self._branch_currents:
            return self._branch_currents[(node_a, node_b)]
        if not (self._check_index(node_a, "get_branch_current") and self._check_index(node_b, "get_branch_current")):
            return 0.0
        if node_a == node_b:
            return 0.0

        if node_a != GROUND_INDEX and node_b != GROUND_INDEX:
            conductance = -self._conductance[node_a, node_b]
            return float(conductance * (self.get_node_voltage(node_a) - self.get_node_voltage(node_b)))

        if node_a == GROUND_INDEX:
            return -self.get_branch_current(node_b, node_a)

        # Self-conductance minus the conductances that lead to other nodes.
        to_ground = self._conductance[node_a, :].sum()
        return float(to_ground * self.get_node_voltage(node_a))

    def is_valid(self) -> bool:
        """
        A conditioning check of the assembled system. Small systems need a
        non-negligible determinant; larger ones need every diagonal entry above
        epsilon and a bounded ratio of the largest to smallest non-zero entry.
        """
        if self._dimension == 0:
            return False
        matrix, _ = self._assemble()
        if self._dimension <= DETERMINANT_CHECK_MAX_DIMENSION:
            return abs(np.linalg.det(matrix)) > self.epsilon

        if np.any(np.abs(np.diag(matrix)) < self.epsilon):
            return False
        magnitudes = np.abs(matrix[matrix != 0.0])
        if magnitudes.size == 0:
            return False
        return magnitudes.max() / magnitudes.min() < MAX_CONDITION_ESTIMATE
