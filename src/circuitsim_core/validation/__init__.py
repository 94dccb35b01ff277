# src/circuitsim_core/validation/__init__.py
from .issues import ConnectionIssue, ConnectionIssueLevel
from .issue_codes import ConnectionIssueCode
from .connection_validator import ConnectionValidator

__all__ = [
    "ConnectionIssue",
    "ConnectionIssueLevel",
    "ConnectionIssueCode",
    "ConnectionValidator",
]
