# src/circuitsim_core/simulation/exceptions.py
"""
Diagnosable exceptions of the solver and simulator.

They are raised inside the numerical layer and caught at the `MatrixSolver` and
`Simulator` boundaries, which log the report and return a status instead of
propagating.
"""
import numpy as np
from dataclasses import dataclass
from typing import Optional

from ..errors import DiagnosableError, format_diagnostic_report


@dataclass()
class SolverInputError(DiagnosableError):
    """Raised for a request the solver cannot honour, such as a negative dimension."""
    details: str
    dimension: Optional[int] = None

    def __str__(self):
        return self.details

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Solver Input Error",
            details=self.details,
            suggestion="Make sure the circuit has at least one node besides ground and that node indices come from the current node-index map.",
            context={'dimension': self.dimension}
        )


@dataclass()
class SingularMatrixError(DiagnosableError, np.linalg.LinAlgError):
    """
    Raised when the conductance matrix has no usable pivot.

    This class uses multiple inheritance to be catchable both as our custom
    `DiagnosableError` and as a standard `LinAlgError`.
    """
    details: str
    dimension: Optional[int] = None

    def __str__(self):
        return f"Singular matrix detected: {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a singular matrix error."""
        return format_diagnostic_report(
            error_type="Singular Matrix Encountered",
            details=self.details,
            suggestion="This is often caused by a node with no conductive path to ground (a floating net) or by a component whose terminals are left unconnected. Run the connection check on the circuit.",
            context={'dimension': self.dimension}
        )
