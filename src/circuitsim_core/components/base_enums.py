# src/circuitsim_core/components/base_enums.py
from enum import Enum, auto


class ComponentKind(Enum):
    """
    The closed set of electrical component variants the solver understands.
    Every registered component class carries exactly one of these tags.
    """
    RESISTOR = auto()
    WIRE = auto()
    LED = auto()
    DRIVER_PIN = auto()
    SENSE_PIN = auto()


class StampBehavior(Enum):
    """
    Defines how a component enters the conductance system on a given pass,
    as queried by the simulator's assembly step.
    """
    CONDUCTANCE = auto()            # A conductance between its nodes (or to ground for one terminal).
    VOLTAGE_SOURCE = auto()         # A fixed-voltage constraint on its node.
    CONDUCTANCE_TO_SUPPLY = auto()  # A conductance toward a fixed supply (Norton equivalent).


class PinMode(Enum):
    """Electrical configuration of a driver pin."""
    INPUT = "INPUT"
    OUTPUT = "OUTPUT"
    INPUT_PULLUP = "INPUT_PULLUP"
    ANALOG_INPUT = "ANALOG_INPUT"
    ANALOG_OUTPUT = "ANALOG_OUTPUT"

    @property
    def is_output(self) -> bool:
        return self in (PinMode.OUTPUT, PinMode.ANALOG_OUTPUT)

    @property
    def is_input(self) -> bool:
        return not self.is_output

    def __str__(self):
        return self.value
