# src/circuitsim_core/simulation/assembly.py
"""
Maps graph nodes onto solver indices and stamps components into the solver.

The ground node holds full index 0 and is addressed in the solver through the
`GROUND_INDEX` sentinel; every other live node gets full index 1..N, which is
solver row 0..N-1. Nodes with no connections carry no equation and are left
out of the map.
"""
import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple

from ..constants import GROUND_INDEX
from ..components.base import ComponentBase
from ..components.base_enums import StampBehavior
from ..components.capabilities import IStampContributor, Stamp
from .solver import MatrixSolver

if TYPE_CHECKING:
    from ..circuit_graph import CircuitGraph

logger = logging.getLogger(__name__)


class NodeIndexMap:
    """A bijection between live node ids and dense indices, rebuilt on every topology change."""

    def __init__(self, graph: "CircuitGraph"):
        self.ground_id: int = graph.ground_id
        self._full: Dict[int, int] = {self.ground_id: 0}
        self._by_row: List[int] = []
        for node_id in sorted(graph.nodes):
            node = graph.nodes[node_id]
            if node_id == self.ground_id or node.is_orphaned:
                continue
            self._full[node_id] = len(self._by_row) + 1
            self._by_row.append(node_id)

    @property
    def dimension(self) -> int:
        """Number of solver unknowns (non-ground nodes)."""
        return len(self._by_row)

    def __len__(self) -> int:
        return len(self._full)

    def __contains__(self, node_id: Optional[int]) -> bool:
        return node_id in self._full

    def full_index(self, node_id: Optional[int]) -> Optional[int]:
        return self._full.get(node_id)

    def solver_index(self, node_id: Optional[int]) -> Optional[int]:
        """The solver row of a node, `GROUND_INDEX` for ground, or None if unmapped."""
        full = self._full.get(node_id)
        if full is None:
            return None
        return GROUND_INDEX if full == 0 else full - 1

    def node_at(self, row: int) -> Optional[int]:
        return self._by_row[row] if 0 <= row < len(self._by_row) else None

    def rows(self) -> Iterator[Tuple[int, int]]:
        """Yields (node_id, solver_row) for every non-ground node."""
        return ((node_id, row) for row, node_id in enumerate(self._by_row))


def get_stamp(component: ComponentBase) -> Stamp:
    return component.get_capability(IStampContributor).get_stamp(component)


def terminal_indices(component: ComponentBase, index_map: NodeIndexMap) -> Optional[List[int]]:
    """Solver indices of every terminal, or None if any terminal is unbound or unmapped."""
    indices = []
    for terminal in range(component.terminal_count):
        index = index_map.solver_index(component.get_node(terminal))
        if index is None:
            return None
        indices.append(index)
    return indices


def stamp_component(solver: MatrixSolver, indices: List[int], component: ComponentBase, stamp: Stamp) -> None:
    """
    Applies one component's stamp. A two-terminal component is a conductance
    between its nodes. A one-terminal component is a conductance to ground, a
    Norton equivalent toward a supply, or a fixed-voltage constraint.
    """
    if len(indices) == 2:
        solver.add_conductance(indices[0], indices[1], stamp.conductance)
        return

    node = indices[0]
    if stamp.behavior is StampBehavior.VOLTAGE_SOURCE:
        if node == GROUND_INDEX:
            logger.warning(f"'{component.name}' drives the ground node; its source is ignored.")
            return
        solver.add_voltage_source(node, GROUND_INDEX, stamp.voltage)
    elif stamp.behavior is StampBehavior.CONDUCTANCE_TO_SUPPLY:
        solver.add_conductance(node, GROUND_INDEX, stamp.conductance)
        solver.add_current_source(GROUND_INDEX, node, stamp.conductance * stamp.voltage)
    else:
        solver.add_conductance(node, GROUND_INDEX, stamp.conductance)


def solved_values(solver: MatrixSolver, indices: List[int], stamp: Stamp) -> Tuple[float, float]:
    """
    The (voltage, current) to push into a component after a solve.

    Two-terminal components see the voltage across them, anode/first terminal
    minus second, and the current flowing from the first terminal to the
    second. One-terminal components see their node voltage and report the
    current they deliver into the node.
    """
    if len(indices) == 2:
        voltage = solver.get_node_voltage(indices[0]) - solver.get_node_voltage(indices[1])
        return voltage, voltage * stamp.conductance

    node = indices[0]
    voltage = solver.get_node_voltage(node)
    if stamp.behavior is StampBehavior.VOLTAGE_SOURCE:
        if node == GROUND_INDEX:
            return 0.0, 0.0
        return voltage, solver.get_source_current(node)
    if stamp.behavior is StampBehavior.CONDUCTANCE_TO_SUPPLY:
        return voltage, (stamp.voltage - voltage) * stamp.conductance
    return voltage, -voltage * stamp.conductance
