# src/circuitsim_core/components/base.py

import logging
import inspect
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, ClassVar, Optional, Type

from ..constants import IDEAL_RESISTANCE_OHM
from .capabilities import (
    ComponentCapability, TCapability, IStampContributor, IStateReporter,
    Stamp, provides
)
from .base_enums import ComponentKind, StampBehavior


logger = logging.getLogger(__name__)


class ComponentBase(ABC):
    """
    The abstract base class for all electrical components.

    A component knows its identity, its fixed set of terminals, the id of the
    node each terminal is bound to (or None when unconnected), and its last
    solved voltage and current. It does not hold references to node objects:
    the owning `CircuitGraph` is the single authority on connectivity and is the
    only caller of `_bind_terminal`.

    Concrete classes supply `get_resistance()` and may override
    `update_state()` to recompute state-dependent behaviour. Optional behaviour
    (stamping style, overload reporting, derived state) is exposed through the
    capability system.
    """
    component_type_str: ClassVar[str] = "BaseComponent"
    kind: ClassVar[Optional[ComponentKind]] = None

    def __init__(self, name: Optional[str] = None, instance_id: Optional[str] = None):
        """
        Initializes the base attributes of a component instance.

        Args:
            name: Display name; defaults to the registered component type string.
            instance_id: Stable identity used by the graph; a random hex id is
                         generated when omitted.
        """
        self.instance_id: str = instance_id or uuid.uuid4().hex
        self.name: str = name or type(self).component_type_str

        self._terminal_nodes: List[Optional[int]] = [None] * len(type(self).declare_terminals())
        self._voltage: float = 0.0
        self._current: float = 0.0

        self._overloaded: bool = False
        self._overload_notice: Optional[str] = None

        # Each capability object is created once, on its first request.
        self._capability_cache: Dict[Type[ComponentCapability], ComponentCapability] = {}
        logger.debug(f"Initialized {type(self).__name__} '{self.name}' ({self.instance_id})")

    # --- Terminals ---

    @classmethod
    @abstractmethod
    def declare_terminals(cls) -> List[str]:
        """
        Declare the names of the component's terminals, in terminal-index order
        (e.g. ``['anode', 'cathode']``). The count is fixed for the class.
        """
        pass

    @property
    def terminal_count(self) -> int:
        return len(self._terminal_nodes)

    def is_valid_terminal(self, terminal: int) -> bool:
        return isinstance(terminal, int) and not isinstance(terminal, bool) and 0 <= terminal < self.terminal_count

    def terminal_index(self, terminal_name: str) -> int:
        """Maps a terminal name to its index; raises ValueError for unknown names."""
        return type(self).declare_terminals().index(terminal_name)

    def get_node(self, terminal: int) -> Optional[int]:
        """
        Returns the id of the node bound to `terminal`, or None when unbound.
        An out-of-range terminal is reported and also yields None.
        """
        if not self.is_valid_terminal(terminal):
            logger.error(
                f"Invalid terminal {terminal!r} requested on '{self.name}' "
                f"({self.terminal_count} terminal(s))."
            )
            return None
        return self._terminal_nodes[terminal]

    @property
    def node_ids(self) -> List[Optional[int]]:
        return list(self._terminal_nodes)

    @property
    def is_connected(self) -> bool:
        return any(node_id is not None for node_id in self._terminal_nodes)

    @property
    def is_fully_connected(self) -> bool:
        return all(node_id is not None for node_id in self._terminal_nodes)

    def _bind_terminal(self, terminal: int, node_id: Optional[int]) -> None:
        self._terminal_nodes[terminal] = node_id

    # --- Electrical contract ---

    @abstractmethod
    def get_resistance(self) -> float:
        """The present resistance in ohms. Never zero or negative."""
        pass

    def get_voltage(self) -> float:
        return self._voltage

    def get_current(self) -> float:
        return self._current

    def get_power_dissipation(self) -> float:
        return abs(self._voltage * self._current)

    def update_state(self, voltage: float, current: float) -> None:
        """Stores the solved values. Subclasses recompute derived state here."""
        self._voltage = float(voltage)
        self._current = float(current)

    def reset(self) -> None:
        """Restores the component's solved state to its power-on values."""
        self._voltage = 0.0
        self._current = 0.0
        self._overloaded = False
        self._overload_notice = None

    # --- Overload latching shared by components that monitor limits ---

    @property
    def is_overloaded(self) -> bool:
        return self._overloaded

    def _set_overload(self, overloaded: bool, reason: str = "") -> None:
        """Latches a notice only on the transition into the overloaded state."""
        if overloaded and not self._overloaded:
            self._overload_notice = reason
            logger.warning(f"'{self.name}' overloaded: {reason}")
        self._overloaded = overloaded

    def _take_overload_notice(self) -> Optional[str]:
        notice, self._overload_notice = self._overload_notice, None
        return notice

    # --- Default capabilities ---

    @provides(IStampContributor)
    class StampContributor:
        """
        Default stamping: a plain conductance of 1/R between the component's
        nodes (or to ground for a one-terminal component).
        """
        def get_stamp(self, component: "ComponentBase") -> Stamp:
            resistance = component.get_resistance()
            if resistance <= 0.0:
                logger.warning(
                    f"'{component.name}' reported non-positive resistance {resistance}; "
                    f"using {IDEAL_RESISTANCE_OHM} ohm."
                )
                resistance = IDEAL_RESISTANCE_OHM
            return Stamp(StampBehavior.CONDUCTANCE, conductance=1.0 / resistance)

    @provides(IStateReporter)
    class StateReporter:
        def get_state(self, component: "ComponentBase") -> Dict[str, Any]:
            return {}

    @classmethod
    def declare_capabilities(cls) -> Dict[Type[ComponentCapability], Type]:
        """
        Discovers the capabilities map by inspecting the class hierarchy (MRO).

        Nested classes decorated with `@provides` are collected; the most
        derived implementation of a capability wins.

        Returns:
            A dictionary mapping a capability Protocol to the nested class that
            provides its implementation.
        """
        discovered_capabilities = {}
        for base_class in cls.__mro__:
            for _, member_obj in inspect.getmembers(base_class):
                if hasattr(member_obj, '_implements_capability'):
                    protocol = member_obj._implements_capability
                    if protocol not in discovered_capabilities:
                        discovered_capabilities[protocol] = member_obj
        return discovered_capabilities

    def get_capability(self, capability_type: Type[TCapability]) -> Optional[TCapability]:
        """
        Queries the component instance for a specific capability.

        Args:
            capability_type: The Protocol class representing the desired capability.

        Returns:
            An instance of the capability implementation if supported, otherwise `None`.
        """
        if capability_type in self._capability_cache:
            return self._capability_cache[capability_type]

        declared = type(self).declare_capabilities()
        impl_class = declared.get(capability_type)

        if impl_class:
            instance = impl_class()
            self._capability_cache[capability_type] = instance
            return instance

        return None

    def __str__(self) -> str:
        return f"{type(self).__name__}('{self.name}')"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}', id='{self.instance_id}')"


# --- Global Component Registry and Decorator ---

COMPONENT_REGISTRY: Dict[str, type[ComponentBase]] = {}


def register_component(type_str: str, kind: ComponentKind):
    """
    A class decorator that tags a component class with its `ComponentKind` and
    registers it in the global component registry.
    """
    def decorator(cls: type[ComponentBase]):
        if not issubclass(cls, ComponentBase):
            raise TypeError(f"Class {cls.__name__} must inherit from ComponentBase.")

        try:
            terminals = cls.declare_terminals()
            if not isinstance(terminals, list) or not all(isinstance(t, str) and t for t in terminals):
                raise TypeError(
                    f"Component class '{cls.__name__}' violates API contract. "
                    f"declare_terminals() must return a list of non-empty strings, but returned: {terminals}."
                )
            if len(set(terminals)) != len(terminals):
                raise TypeError(
                    f"Component class '{cls.__name__}' violates API contract. "
                    f"declare_terminals() must return unique names, but found duplicates in: {terminals}."
                )
            if len(terminals) not in (1, 2):
                raise TypeError(
                    f"Component class '{cls.__name__}' declares {len(terminals)} terminals; "
                    f"only one- and two-terminal components can be stamped."
                )
        except TypeError:
            raise
        except Exception as e:
            raise TypeError(
                f"A failure occurred while attempting to validate the API contract of "
                f"component class '{cls.__name__}'. Error during call to declare_terminals(): {e}"
            ) from e

        if type_str in COMPONENT_REGISTRY:
            logger.warning(f"Component type '{type_str}' is being redefined/overwritten.")
        cls.component_type_str = type_str
        cls.kind = kind
        COMPONENT_REGISTRY[type_str] = cls
        logger.debug(f"Registered component type '{type_str}' -> {cls.__name__}")
        return cls
    return decorator


def create_component(type_str: str, *args, **kwargs) -> ComponentBase:
    """Instantiates a registered component type by its type string."""
    try:
        cls = COMPONENT_REGISTRY[type_str]
    except KeyError:
        raise ValueError(
            f"Unknown component type '{type_str}'. Available types: {sorted(COMPONENT_REGISTRY)}."
        ) from None
    return cls(*args, **kwargs)
