# src/circuitsim_core/components/__init__.py
import logging
logger = logging.getLogger(__name__)

# Import base first to define registry and decorator
from .base import ComponentBase, COMPONENT_REGISTRY, register_component, create_component
from .base_enums import ComponentKind, StampBehavior, PinMode
from .capabilities import (
    IElectricalContract, IStampContributor, IOverloadMonitor, IStateReporter, Stamp
)
from .exceptions import ComponentError
# Import concrete elements to trigger registration
from .elements import Resistor, Wire, LED, LEDColor
from .pins import DriverPin, SensePin

logger.debug(f"Available component types: {list(COMPONENT_REGISTRY.keys())}")

__all__ = [
    "ComponentBase",
    "COMPONENT_REGISTRY",
    "register_component",
    "create_component",
    "ComponentKind",
    "StampBehavior",
    "PinMode",
    "IElectricalContract",
    "IStampContributor",
    "IOverloadMonitor",
    "IStateReporter",
    "Stamp",
    "ComponentError",
    "Resistor",
    "Wire",
    "LED",
    "LEDColor",
    "DriverPin",
    "SensePin",
]
