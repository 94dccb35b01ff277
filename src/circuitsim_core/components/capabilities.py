# src/circuitsim_core/components/capabilities.py
"""
Defines the capability architecture for circuit components.

The simulator never branches on concrete component classes. Every component
satisfies the small `IElectricalContract` (resistance, solved voltage/current,
state update), and optional behaviour is queried through capabilities declared
with `typing.Protocol`:

- IStampContributor: how the component enters the conductance system this pass.
- IOverloadMonitor: overload flag plus a one-shot, latched overload notice.
- IStateReporter: derived, component-specific state for change notifications
  (e.g. an LED's on/off flag and brightness).

`@provides` marks a nested class as the implementation of a capability; the
`ComponentBase.declare_capabilities` method discovers them through the MRO.
"""

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    Optional,
    Protocol,
    Type,
    TypeVar,
    TYPE_CHECKING,
    runtime_checkable,
)

from .base_enums import StampBehavior

# Import ComponentBase only for type analysis, preventing a circular import at runtime.
if TYPE_CHECKING:
    from .base import ComponentBase

logger = logging.getLogger(__name__)


@runtime_checkable
class IElectricalContract(Protocol):
    """
    The solver-facing contract every electrical component satisfies.

    `get_resistance` must be a pure function of the component's current state
    and must never return zero or a negative value.
    """

    def get_resistance(self) -> float:
        ...

    def get_voltage(self) -> float:
        ...

    def get_current(self) -> float:
        ...

    def update_state(self, voltage: float, current: float) -> None:
        ...


@dataclass(frozen=True)
class Stamp:
    """
    A component's contribution to one assembly pass.

    Attributes:
        behavior: How the contribution is stamped.
        conductance: Siemens; used for CONDUCTANCE and CONDUCTANCE_TO_SUPPLY.
        voltage: Volts; the forced node voltage for VOLTAGE_SOURCE, or the
                 supply voltage for CONDUCTANCE_TO_SUPPLY.
    """
    behavior: StampBehavior
    conductance: float = 0.0
    voltage: float = 0.0


@runtime_checkable
class ComponentCapability(Protocol):
    """
    A marker protocol for all component capabilities. Any class that provides
    a specific functionality to the simulator should conform to a protocol
    that inherits from this one.
    """

    pass


# Bound TypeVar so that `get_capability(IStampContributor)` is typed as returning
# an `IStampContributor`.
TCapability = TypeVar("TCapability", bound=ComponentCapability)


@runtime_checkable
class IStampContributor(ComponentCapability, Protocol):
    """
    Defines how a component is stamped into the conductance system.

    Called once per nonlinear iteration, after the previous iteration's
    `update_state`, so state-dependent resistances are always current.
    """

    def get_stamp(self, component: "ComponentBase") -> Stamp:
        ...


@runtime_checkable
class IOverloadMonitor(ComponentCapability, Protocol):
    """
    Defines the capability of a component to detect physical-limit violations
    (over-current, over-temperature).
    """

    def is_overloaded(self, component: "ComponentBase") -> bool:
        ...

    def consume_overload_notice(self, component: "ComponentBase") -> Optional[str]:
        """
        Returns the reason for a transition into the overloaded state that has
        not yet been reported, and clears it. Returns None when there is nothing
        new to report.
        """
        ...


@runtime_checkable
class IStateReporter(ComponentCapability, Protocol):
    """
    Defines the capability of a component to report derived state beyond its
    solved voltage and current.
    """

    def get_state(self, component: "ComponentBase") -> Dict[str, Any]:
        ...


def provides(capability_protocol: Type[ComponentCapability]):
    """
    A class decorator to register a class as an implementation for a capability.

    It attaches a private attribute, `_implements_capability`, to the decorated
    class. `ComponentBase.declare_capabilities` uses this attribute for
    automatic discovery.

    Args:
        capability_protocol: The capability Protocol (e.g., IStampContributor)
                             that this class implements.
    """

    def decorator(cls: Type) -> Type:
        if not issubclass(capability_protocol, ComponentCapability):
            raise TypeError(
                f"Decorator argument for @provides must be a ComponentCapability "
                f"Protocol, but got {capability_protocol}."
            )
        cls._implements_capability = capability_protocol
        logger.debug(
            f"Class '{cls.__name__}' registered as providing capability '{capability_protocol.__name__}'."
        )
        return cls

    return decorator
