# src/circuitsim_core/circuit_graph.py
"""
The mutable component/node graph of a circuit.

`CircuitGraph` is an arena: it owns a table of `Node` records keyed by integer
id and a table of components keyed by instance id. Nodes reference components
by id through `Connection` records, and components reference nodes by id
through their terminal bindings. Only the graph writes either side, which keeps
the two views consistent.

Every public mutator validates its request first. An invalid request (unknown
component or node, out-of-range terminal, self-connection) is logged as a
`TopologyError` report and the call returns ``False`` with the graph unchanged.
Successful mutations publish `TopologyChanged` on `graph.events`.
"""
import logging
import itertools
from typing import Dict, Iterator, List, Optional, Set

from .components.base import ComponentBase
from .components.elements import Wire
from .data_structures import Node
from .errors import TopologyError
from .events import ComponentChanged, EventBus, TopologyChanged
from .validation import ConnectionIssue, ConnectionValidator

logger = logging.getLogger(__name__)

GROUND_ALIASES = ("GND", "GROUND")


class CircuitGraph:
    """Owns the components, the nodes, the ground node and named-node aliases of one circuit."""

    def __init__(self, events: Optional[EventBus] = None):
        self.events: EventBus = events or EventBus()
        self.nodes: Dict[int, Node] = {}
        self.components: Dict[str, ComponentBase] = {}
        self._external: Set[str] = set()
        self._named_nodes: Dict[str, int] = {}
        self._id_counter = itertools.count(1)

        ground = self._new_node()
        ground.is_ground = True
        self._ground_id: int = ground.id
        for alias in GROUND_ALIASES:
            self._named_nodes[alias] = ground.id
        logger.debug(f"CircuitGraph created with ground node {ground.id}")

    # --- Internal helpers ---

    def _new_node(self) -> Node:
        node = Node(id=next(self._id_counter))
        self.nodes[node.id] = node
        return node

    def _publish_topology(self, reason: str) -> None:
        self.events.publish(TopologyChanged(reason=reason))

    def _require_component(self, component: Optional[ComponentBase], adoptable: bool = False) -> bool:
        """
        Validates a component reference. Returns True when it is already in the
        circuit, False when it is unknown but `adoptable`.
        """
        if component is None:
            raise TopologyError("A component reference is required but None was given.")
        known = self.components.get(component.instance_id)
        if known is component:
            return True
        if known is not None:
            raise TopologyError(
                f"Another component already uses the id '{component.instance_id}'.",
                component_id=component.instance_id,
            )
        if not adoptable:
            raise TopologyError(
                f"Component '{component.name}' is not part of this circuit.",
                component_id=component.instance_id,
            )
        return False

    def _adopt(self, component: ComponentBase) -> None:
        if not self.has_component(component):
            self._insert_component(component, external=False)

    def _require_terminal(self, component: ComponentBase, terminal: int) -> None:
        if not component.is_valid_terminal(terminal):
            raise TopologyError(
                f"Terminal {terminal!r} is out of range for '{component.name}' "
                f"which has {component.terminal_count} terminal(s).",
                component_id=component.instance_id,
            )

    def _require_node(self, node_id: Optional[int]) -> Node:
        if node_id is None:
            raise TopologyError("A node reference is required but None was given.")
        node = self.nodes.get(node_id)
        if node is None:
            raise TopologyError(f"Node {node_id} does not exist in this circuit.", node_id=node_id)
        return node

    def _insert_component(self, component: ComponentBase, external: bool) -> None:
        self.components[component.instance_id] = component
        if external:
            self._external.add(component.instance_id)
        logger.debug(f"Added {component!r}{' (external)' if external else ''}")

    def _bind(self, component: ComponentBase, terminal: int, node: Node) -> None:
        """Binds a terminal to `node`, first releasing any node it was bound to."""
        current = component.get_node(terminal)
        if current == node.id:
            return
        if current is not None:
            self._unbind(component, terminal)
        node._add_connection(component.instance_id, terminal)
        component._bind_terminal(terminal, node.id)

    def _unbind(self, component: ComponentBase, terminal: int) -> Optional[int]:
        """Releases a terminal. The old node is removed when it is orphaned and not ground."""
        node_id = component.get_node(terminal)
        if node_id is None:
            return None
        component._bind_terminal(terminal, None)
        node = self.nodes.get(node_id)
        if node is not None:
            node._remove_connection(component.instance_id, terminal)
            if node.is_orphaned and not node.is_ground:
                self._discard_node(node_id)
        return node_id

    def _discard_node(self, node_id: int) -> None:
        self.nodes.pop(node_id, None)
        for alias in [name for name, nid in self._named_nodes.items() if nid == node_id]:
            del self._named_nodes[alias]
        logger.debug(f"Removed node {node_id}")

    def _merge_nodes(self, keep: Node, drop: Node) -> None:
        for connection in list(drop.connections):
            owner = self.components[connection.component_id]
            keep._add_connection(connection.component_id, connection.terminal)
            owner._bind_terminal(connection.terminal, keep.id)
        drop.connections.clear()
        for alias, nid in list(self._named_nodes.items()):
            if nid == drop.id:
                self._named_nodes[alias] = keep.id
        self.nodes.pop(drop.id, None)
        logger.debug(f"Merged node {drop.id} into node {keep.id}")

    # --- Components ---

    def add_component(self, component: ComponentBase, external: bool = False) -> bool:
        """
        Adds a component to the circuit.

        An `external` component belongs to an outside collaborator (e.g. a board
        model exposing its pins): the graph references it but leaves its state
        alone when it is removed.
        """
        try:
            if component is None:
                raise TopologyError("Cannot add a None component.")
            known = self.components.get(component.instance_id)
            if known is component:
                return True
            if known is not None:
                raise TopologyError(
                    f"Another component already uses the id '{component.instance_id}'.",
                    component_id=component.instance_id,
                )
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False
        self._insert_component(component, external)
        self._publish_topology(f"component '{component.name}' added")
        return True

    def has_component(self, component: ComponentBase) -> bool:
        return component is not None and self.components.get(component.instance_id) is component

    def is_external(self, component: ComponentBase) -> bool:
        return self.has_component(component) and component.instance_id in self._external

    def get_component(self, instance_id: str) -> Optional[ComponentBase]:
        return self.components.get(instance_id)

    def iter_components(self) -> Iterator[ComponentBase]:
        return iter(list(self.components.values()))

    def remove_component_safely(self, component: ComponentBase) -> bool:
        """Disconnects every terminal, then drops the component from the circuit."""
        try:
            self._require_component(component)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False

        for terminal in range(component.terminal_count):
            self._unbind(component, terminal)
        del self.components[component.instance_id]
        if component.instance_id in self._external:
            self._external.discard(component.instance_id)
        else:
            component.reset()
        self._publish_topology(f"component '{component.name}' removed")
        return True

    def remove_wire(self, wire: Wire) -> bool:
        return self.remove_component_safely(wire)

    def remove_all_components(self) -> None:
        for component in list(self.components.values()):
            self.remove_component_safely(component)
        self._external.clear()

    def notify_component_changed(self, component: ComponentBase) -> None:
        """Announces a non-topological change, such as a pin write, to subscribers."""
        if not self.has_component(component):
            logger.warning(f"Change notification for unknown component {component!r} ignored.")
            return
        self.events.publish(ComponentChanged(component_id=component.instance_id))

    # --- Nodes ---

    def create_node(self) -> Node:
        node = self._new_node()
        self._publish_topology(f"node {node.id} created")
        return node

    def remove_node(self, node_id: int) -> bool:
        """
        Removes a node, unbinding any terminals still attached to it. The ground
        node cannot be removed.
        """
        try:
            node = self._require_node(node_id)
            if node.is_ground:
                raise TopologyError("The ground node cannot be removed.", node_id=node_id)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False
        for connection in list(node.connections):
            self.components[connection.component_id]._bind_terminal(connection.terminal, None)
        node.connections.clear()
        self._discard_node(node_id)
        self._publish_topology(f"node {node_id} removed")
        return True

    def get_node(self, node_id: Optional[int]) -> Optional[Node]:
        return self.nodes.get(node_id) if node_id is not None else None

    @property
    def ground_node(self) -> Node:
        return self.nodes[self._ground_id]

    @property
    def ground_id(self) -> int:
        return self._ground_id

    def set_ground_node(self, node_id: int) -> bool:
        """Makes `node_id` the reference node. The old ground is removed if it has no connections."""
        try:
            node = self._require_node(node_id)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False
        if node.id == self._ground_id:
            return True

        old_ground = self.nodes[self._ground_id]
        old_ground.is_ground = False
        node.is_ground = True
        node.voltage = 0.0
        self._ground_id = node.id
        for alias in GROUND_ALIASES:
            self._named_nodes[alias] = node.id
        if old_ground.is_orphaned:
            self._discard_node(old_ground.id)
        logger.info(f"Ground node changed to node {node.id}")
        self._publish_topology(f"ground moved to node {node.id}")
        return True

    def find_or_create_node(self, name: str = "") -> Node:
        """Returns the node registered under `name`, creating it on first use."""
        if not name:
            return self.create_node()
        node_id = self._named_nodes.get(name)
        if node_id is not None and node_id in self.nodes:
            return self.nodes[node_id]
        node = self.create_node()
        self._named_nodes[name] = node.id
        logger.debug(f"Created named node '{name}' -> {node.id}")
        return node

    def get_named_node(self, name: str) -> Optional[Node]:
        node_id = self._named_nodes.get(name)
        return self.nodes.get(node_id) if node_id is not None else None

    @property
    def named_nodes(self) -> Dict[str, int]:
        return dict(self._named_nodes)

    # --- Connectivity ---

    def connect_component_to_node(self, component: ComponentBase, terminal: int, node_id: int) -> bool:
        """
        Binds a terminal to an existing node. A terminal already bound elsewhere
        is moved. A component not yet in the circuit is added as owned.
        """
        try:
            node = self._require_node(node_id)
            if component is not None:
                self._require_terminal(component, terminal)
            self._require_component(component, adoptable=True)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False

        self._adopt(component)
        if component.get_node(terminal) == node.id:
            return True
        self._bind(component, terminal, node)
        logger.debug(f"Connected {component.name}[{terminal}] to node {node.id}")
        self._publish_topology(f"'{component.name}' terminal {terminal} connected")
        return True

    def connect_components(self, a: ComponentBase, terminal_a: int, b: ComponentBase, terminal_b: int) -> bool:
        """
        Joins two terminals electrically.

        - Neither terminal bound: both are bound to a new node.
        - One terminal bound: the other joins that node.
        - Both on the same node: nothing to do.
        - Both bound to different nodes: the nodes merge. Every connection of
          `b`'s node moves onto `a`'s node, whose id survives. When `b`'s node
          is the ground node the roles swap so that ground is never discarded.
        """
        try:
            for comp, term in ((a, terminal_a), (b, terminal_b)):
                if comp is None:
                    raise TopologyError("Cannot connect a None component.")
                self._require_terminal(comp, term)
            if a is b and terminal_a == terminal_b:
                raise TopologyError(
                    f"Cannot connect terminal {terminal_a} of '{a.name}' to itself.",
                    component_id=a.instance_id,
                )
            self._require_component(a, adoptable=True)
            self._require_component(b, adoptable=True)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False

        self._adopt(a)
        self._adopt(b)
        node_a = self.get_node(a.get_node(terminal_a))
        node_b = self.get_node(b.get_node(terminal_b))

        if node_a is not None and node_a is node_b:
            logger.debug(f"'{a.name}' and '{b.name}' are already connected on node {node_a.id}")
            return True

        if node_a is None and node_b is None:
            node = self._new_node()
            self._bind(a, terminal_a, node)
            self._bind(b, terminal_b, node)
            logger.debug(f"Connected {a.name}[{terminal_a}] to {b.name}[{terminal_b}] via new node {node.id}")
        elif node_b is None:
            self._bind(b, terminal_b, node_a)
            logger.debug(f"Connected {b.name}[{terminal_b}] to existing node {node_a.id}")
        elif node_a is None:
            self._bind(a, terminal_a, node_b)
            logger.debug(f"Connected {a.name}[{terminal_a}] to existing node {node_b.id}")
        else:
            keep, drop = (node_b, node_a) if node_b.is_ground else (node_a, node_b)
            self._merge_nodes(keep, drop)

        self._publish_topology(f"'{a.name}' connected to '{b.name}'")
        return True

    def disconnect_component(self, component: ComponentBase, terminal: int) -> bool:
        """Unbinds one terminal. A non-ground node left without connections is removed."""
        try:
            if component is not None:
                self._require_terminal(component, terminal)
            self._require_component(component)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False

        node_id = self._unbind(component, terminal)
        if node_id is None:
            return True
        logger.debug(f"Disconnected {component.name}[{terminal}] from node {node_id}")
        self._publish_topology(f"'{component.name}' terminal {terminal} disconnected")
        return True

    def disconnect_all(self, component: ComponentBase) -> bool:
        try:
            self._require_component(component)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return False
        released = [self._unbind(component, t) for t in range(component.terminal_count)]
        if any(node_id is not None for node_id in released):
            self._publish_topology(f"'{component.name}' disconnected")
        return True

    def add_wire(self, from_node: int, to_node: int) -> Optional[Wire]:
        """
        Places an ideal wire between two nodes. An existing wire between the
        same pair is returned instead of adding a second one. Returns None for a
        wire from a node to itself or for unknown nodes.
        """
        try:
            start = self._require_node(from_node)
            end = self._require_node(to_node)
        except TopologyError as e:
            logger.error(e.get_diagnostic_report())
            return None
        if start is end:
            logger.debug(f"Wire from node {start.id} to itself is not needed")
            return None

        wanted = {start.id, end.id}
        for component in self.components.values():
            if isinstance(component, Wire) and set(component.node_ids) == wanted:
                logger.debug(f"Wire already exists between nodes {start.id} and {end.id}")
                return component

        wire = Wire(name="Jumper Wire")
        self._insert_component(wire, external=False)
        self._bind(wire, 0, start)
        self._bind(wire, 1, end)
        logger.debug(f"Created wire between nodes {start.id} and {end.id}")
        self._publish_topology(f"wire added between nodes {start.id} and {end.id}")
        return wire

    # --- Diagnostics ---

    def check_connections(self) -> List[ConnectionIssue]:
        """Runs the advisory connection checks and returns structured issues."""
        return ConnectionValidator(self).validate()

    def get_connection_issues(self) -> List[str]:
        """Human-readable advisory messages for floating nets, loose components and a missing ground."""
        return [issue.message for issue in self.check_connections()]

    def validate_connections(self) -> bool:
        return not self.get_connection_issues()

    def __repr__(self) -> str:
        return f"CircuitGraph(nodes={len(self.nodes)}, components={len(self.components)}, ground={self._ground_id})"
