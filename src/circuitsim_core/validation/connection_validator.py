# src/circuitsim_core/validation/connection_validator.py
"""
Advisory connectivity checks over a `CircuitGraph`.

The checks never modify the graph and never block a simulation; they only
explain why a solve might fail or produce surprising voltages.
"""
import logging
from typing import TYPE_CHECKING, List

import networkx as nx

from .issues import ConnectionIssue, ConnectionIssueLevel
from .issue_codes import ConnectionIssueCode

if TYPE_CHECKING:
    from ..circuit_graph import CircuitGraph

logger = logging.getLogger(__name__)


class ConnectionValidator:
    def __init__(self, graph: "CircuitGraph"):
        self.graph = graph
        self._issues: List[ConnectionIssue] = []

    def _add_issue(self, code: ConnectionIssueCode, level: ConnectionIssueLevel, component_id=None, node_id=None, **details):
        message = code.format_message(node_id=node_id, **details)
        self._issues.append(ConnectionIssue(
            level=level, code=code.code, message=message,
            component_id=component_id, node_id=node_id, details=details,
        ))

    def validate(self) -> List[ConnectionIssue]:
        self._issues = []
        self._check_floating_nodes()
        self._check_disconnected_components()
        self._check_ground()
        self._check_ground_paths()
        if self._issues:
            logger.info(f"Connection check found {len(self._issues)} issue(s).")
        return list(self._issues)

    def _check_floating_nodes(self):
        for node in self.graph.nodes.values():
            if not node.is_ground and node.connection_count < 2:
                self._add_issue(
                    ConnectionIssueCode.NODE_FLOATING, ConnectionIssueLevel.WARNING,
                    node_id=node.id, connection_count=node.connection_count,
                )

    def _check_disconnected_components(self):
        for component in self.graph.components.values():
            if not component.is_connected:
                self._add_issue(
                    ConnectionIssueCode.COMP_DISCONNECTED, ConnectionIssueLevel.WARNING,
                    component_id=component.instance_id, component_name=component.name,
                )

    def _check_ground(self):
        ground = self.graph.ground_node
        if ground is None or not ground.is_ground:
            self._add_issue(ConnectionIssueCode.GND_MISSING, ConnectionIssueLevel.WARNING)

    def _check_ground_paths(self):
        """
        Builds a graph of nodes joined by conductive components and reports every
        island of connected nodes that cannot reach ground. Single-terminal
        components (pins) always stamp against ground, so they join their node
        to ground.
        """
        ground_id = self.graph.ground_id
        conduction = nx.Graph()
        conduction.add_nodes_from(self.graph.nodes)
        for component in self.graph.components.values():
            node_ids = component.node_ids
            if None in node_ids:
                continue
            if len(node_ids) == 1:
                conduction.add_edge(node_ids[0], ground_id)
            else:
                conduction.add_edge(node_ids[0], node_ids[1])

        for island in nx.connected_components(conduction):
            if ground_id in island:
                continue
            if not any(self.graph.nodes[nid].connection_count for nid in island):
                continue
            self._add_issue(
                ConnectionIssueCode.NET_NO_GROUND_PATH, ConnectionIssueLevel.INFO,
                node_ids=sorted(island),
            )
