# src/circuitsim_core/simulation/results.py
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SolveStatus(Enum):
    CONVERGED = "CONVERGED"
    NOT_CONVERGED = "NOT_CONVERGED"
    SOLVER_ERROR = "SOLVER_ERROR"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    SKIPPED = "SKIPPED"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class SolveResult:
    """
    Outcome of one full nonlinear resolve.

    A NOT_CONVERGED result still leaves the last iteration's values in the
    components as a best-effort answer; a SOLVER_ERROR leaves the values of the
    last successful iteration untouched.
    """
    status: SolveStatus
    iterations: int = 0
    error: Optional[str] = None

    @property
    def converged(self) -> bool:
        return self.status is SolveStatus.CONVERGED

    def __bool__(self) -> bool:
        return self.converged
