# src/circuitsim_core/validation/issue_codes.py
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class ConnectionIssueCode(Enum):
    """
    Registry of connection issue codes and their message templates.
    Each enum member's value is a tuple: (code_str, message_template_str).
    """

    NODE_FLOATING = ("NODE_FLOATING", "Node {node_id} has only {connection_count} connection(s); the net is floating.")
    COMP_DISCONNECTED = ("COMP_DISCONNECTED", "Component '{component_name}' is not connected.")
    GND_MISSING = ("GND_MISSING", "No ground node found.")
    NET_NO_GROUND_PATH = ("NET_NO_GROUND_PATH", "Node(s) {node_ids} have no conductive path to ground; their voltages are undetermined.")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def template(self) -> str:
        return self.value[1]

    def format_message(self, **kwargs) -> str:
        """Formats the message template with provided keyword arguments."""
        try:
            return self.template.format(**kwargs)
        except KeyError as e:
            logger.error(f"Missing key {e} for formatting message template of {self.name} (code: {self.code}): '{self.template}'. Provided args: {kwargs}")
            return f"Error formatting message for {self.code}: Missing key {e}. Template: '{self.template}' Args: {kwargs}"
