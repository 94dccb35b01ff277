# src/circuitsim_core/data_structures.py
import logging
from dataclasses import dataclass, field
from typing import List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connection:
    """
    One (component, terminal) attachment recorded on a node.

    Components are referenced by id rather than by object so that the graph's
    node table and component table never hold each other alive.
    """
    component_id: str
    terminal: int


@dataclass(eq=False)
class Node:
    """
    An electrical equipotential point in the circuit graph.

    Nodes are owned by a `CircuitGraph`, which is the only code allowed to add
    or remove connections. The `voltage` field is written back by the simulator
    after every successful resolve; the ground node always reads 0 V.

    The MNA index of a node is intentionally not stored here. It is transient
    state that belongs to the simulator's `NodeIndexMap`.
    """
    id: int
    is_ground: bool = False
    voltage: float = 0.0
    connections: List[Connection] = field(default_factory=list)

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    @property
    def is_orphaned(self) -> bool:
        return not self.connections

    def has_connection(self, component_id: str, terminal: int) -> bool:
        return Connection(component_id, terminal) in self.connections

    def connection_pairs(self) -> List[Tuple[str, int]]:
        return [(c.component_id, c.terminal) for c in self.connections]

    def _add_connection(self, component_id: str, terminal: int) -> None:
        connection = Connection(component_id, terminal)
        if connection not in self.connections:
            self.connections.append(connection)

    def _remove_connection(self, component_id: str, terminal: int) -> None:
        connection = Connection(component_id, terminal)
        if connection in self.connections:
            self.connections.remove(connection)

    def __repr__(self) -> str:
        flag = ", ground" if self.is_ground else ""
        return f"Node(id={self.id}{flag}, connections={len(self.connections)})"
