# src/circuitsim_core/errors.py
import logging
from dataclasses import dataclass
from abc import abstractmethod
from typing import Any, Dict, Optional, Protocol
from typing import runtime_checkable

logger = logging.getLogger(__name__)

# --- User-Facing Exception Hierarchy ---

class CircuitSimError(Exception):
    """Base class for all custom, user-facing errors in the circuit simulator core."""
    pass


class SimulationRunError(CircuitSimError):
    """
    Raised by convenience entry points that cannot return a status, when a
    resolve fails outright (e.g. a singular conductance system). The message is
    a pre-formatted diagnostic report.
    """
    pass


# --- Diagnostic Protocol & Base Exception ---

@runtime_checkable
class Diagnosable(Protocol):
    """
    A protocol for exceptions that can generate their own rich diagnostic report.
    Callers that only need the report can work with any diagnosable object
    without knowing its concrete type.
    """
    def get_diagnostic_report(self) -> str:
        """Generates a complete, user-friendly, multi-line report string."""
        ...


class DiagnosableError(Exception, Diagnosable):
    """
    A common, concrete base class for all internal exceptions that are diagnosable.

    It inherits from `Exception`, so it can be used in `except` clauses, and it
    declares `get_diagnostic_report` as abstract, so every subclass must be able
    to render a user-friendly report or it fails at instantiation time.
    """
    @abstractmethod
    def get_diagnostic_report(self) -> str:
        """
        Abstract method to generate the diagnostic report.
        Subclasses MUST implement this.
        """
        raise NotImplementedError


@dataclass()
class TopologyError(DiagnosableError):
    """
    Raised inside the circuit graph when a connectivity request is invalid:
    an out-of-range terminal, an unknown component or node, or an attempt to
    connect a terminal to itself.

    The public graph API catches it, logs the report and returns ``False``, so
    the graph is left exactly as it was before the request.
    """
    details: str
    component_id: Optional[str] = None
    node_id: Optional[int] = None

    def __str__(self) -> str:
        return self.details

    def get_diagnostic_report(self) -> str:
        context = {}
        if self.component_id is not None:
            context['component'] = self.component_id
        if self.node_id is not None:
            context['node'] = self.node_id
        return format_diagnostic_report(
            error_type="Circuit Topology Error",
            details=self.details,
            suggestion="Check that the component was added to the circuit, that the terminal index is within the component's terminal count, and that the node still exists.",
            context=context
        )


# --- Stateless Formatting Utility ---

def format_diagnostic_report(
    error_type: str,
    details: str,
    suggestion: str,
    context: Dict[str, Any]
) -> str:
    """
    A stateless helper to format the final multi-line report string, ensuring a
    consistent look and feel for all user-facing diagnostics.

    Args:
        error_type: The high-level category of the error (e.g., "Singular Matrix").
        details: A detailed, potentially multi-line description of the problem.
        suggestion: Actionable advice for the user to resolve the issue.
        context: A dictionary of contextual information (component, node, iteration...).

    Returns:
        A formatted, user-friendly diagnostic report string ready for display.
    """
    lines = [
        "\n",
        "================ Circuit Simulator: Diagnostic Report ================",
        f"Error Type:     {error_type}",
    ]
    if component := context.get('component'):
        lines.append(f"Component:      {component}")
    if (node := context.get('node')) is not None:
        lines.append(f"Node:           {node}")
    if (dimension := context.get('dimension')) is not None:
        lines.append(f"Dimension:      {dimension}")
    if user_input := context.get('user_input'):
        lines.append(f"User Input:     '{user_input}'")

    lines.append("\nDetails:")
    for line in details.splitlines():
        lines.append(f"  {line}")

    if suggestion:
        lines.append("\nSuggestion:")
        for line in suggestion.splitlines():
            lines.append(f"  {line}")

    lines.append("======================================================================")
    return "\n".join(lines)
