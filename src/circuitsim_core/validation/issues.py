# src/circuitsim_core/validation/issues.py
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class ConnectionIssueLevel(Enum):
    """Severity level of a connection issue. Connection issues never block a simulation."""
    WARNING = "WARNING"
    INFO = "INFO"

    def __str__(self):
        return self.value


@dataclass
class ConnectionIssue:
    """A single advisory finding of the connection check."""
    level: ConnectionIssueLevel
    code: str
    message: str
    component_id: Optional[str] = None
    node_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.level.name} - {self.code}]"]
        if self.node_id is not None:
            parts.append(f"Node: {self.node_id}")
        if self.component_id:
            parts.append(f"Component: {self.component_id}")
        parts.append(f"Message: {self.message}")

        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in sorted(self.details.items()))
            parts.append(f"Details: ({details_str})")

        return " ".join(parts)
