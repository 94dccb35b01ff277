# src/circuitsim_core/components/exceptions.py
"""
Defines the diagnosable exception for the components subsystem.
"""
from dataclasses import dataclass

from ..errors import DiagnosableError, format_diagnostic_report


@dataclass()
class ComponentError(DiagnosableError):
    """
    The canonical, diagnosable exception for component-related errors.

    Raised when a component is constructed or reconfigured with an invalid
    parameter value, such as a non-positive resistance or an unknown wire gauge.
    """
    component_id: str
    details: str

    def __str__(self) -> str:
        return f"{self.component_id}: {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a component parameter error."""
        return format_diagnostic_report(
            error_type="Component Parameter Error",
            details=self.details,
            suggestion="Check the component's parameters: resistances must be positive and finite, and quantities must carry compatible units (e.g. '220 ohm', '15 cm').",
            context={'component': self.component_id}
        )
