# src/circuitsim_core/components/pins.py
"""
Single-terminal pin models: the electrical face a board collaborator exposes
for each of its I/O pins.

A `DriverPin` is a configurable microcontroller pin. Depending on its mode and
commanded value it enters the conductance system as a fixed-voltage source, a
low-impedance conductance to ground, a high-impedance input, or a pull-up
resistor toward the supply. A `SensePin` is a passive high-impedance probe.

The pin only holds configuration and the last solved values; after changing a
pin, callers notify the owning graph (`CircuitGraph.notify_component_changed`)
so a running simulator resolves the circuit.
"""

import logging
from typing import Any, Dict, FrozenSet, List, Optional

from ..constants import SOURCE_VOLTAGE_THRESHOLD
from .base import ComponentBase, register_component
from .base_enums import ComponentKind, PinMode, StampBehavior
from .capabilities import IOverloadMonitor, IStampContributor, IStateReporter, Stamp, provides


logger = logging.getLogger(__name__)

PIN_VCC_V: float = 5.0
PIN_OUTPUT_RESISTANCE_OHM: float = 25.0
PIN_INPUT_RESISTANCE_OHM: float = 1.0e9
PIN_PULLUP_RESISTANCE_OHM: float = 50.0e3
PIN_MAX_CURRENT_A: float = 0.04
PWM_MAX_DUTY: int = 255
ADC_RESOLUTION_BITS: int = 10
DEFAULT_PWM_PINS: FrozenSet[int] = frozenset({3, 5, 6, 9, 10, 11})


def voltage_to_adc(voltage: float, reference: float = PIN_VCC_V, bits: int = ADC_RESOLUTION_BITS) -> int:
    """Quantizes a voltage into an ADC count, clamped to the converter range."""
    max_value = (1 << bits) - 1
    ratio = min(max(voltage / reference, 0.0), 1.0)
    return int(ratio * max_value)


@register_component("DriverPin", ComponentKind.DRIVER_PIN)
class DriverPin(ComponentBase):
    """
    A microcontroller I/O pin with a mode and a commanded output voltage.

    The current reported by `get_current()` is the current the pin delivers
    into its node: positive when sourcing, negative when sinking.
    """

    def __init__(
        self,
        pin_number: int = 0,
        mode: PinMode = PinMode.INPUT,
        vcc: float = PIN_VCC_V,
        supports_pwm: Optional[bool] = None,
        name: Optional[str] = None,
        instance_id: Optional[str] = None,
    ):
        super().__init__(name=name or f"Pin {pin_number}", instance_id=instance_id)
        self.pin_number = pin_number
        self.vcc = vcc
        self.supports_pwm = pin_number in DEFAULT_PWM_PINS if supports_pwm is None else supports_pwm
        self.max_current: float = PIN_MAX_CURRENT_A
        self.output_resistance: float = PIN_OUTPUT_RESISTANCE_OHM
        self.input_resistance: float = PIN_INPUT_RESISTANCE_OHM
        self.pullup_resistance: float = PIN_PULLUP_RESISTANCE_OHM

        self._mode = mode
        self._output_voltage: float = 0.0
        self._input_voltage: float = 0.0
        self._pwm_duty: int = 0

    @classmethod
    def declare_terminals(cls) -> List[str]:
        return ['pin']

    # --- Mode ---

    @property
    def mode(self) -> PinMode:
        return self._mode

    def set_mode(self, mode: PinMode) -> None:
        if mode == self._mode:
            return
        old_mode, self._mode = self._mode, mode
        if old_mode.is_output:
            self._output_voltage = 0.0
            self._pwm_duty = 0
            self._current = 0.0
        logger.debug(f"'{self.name}' mode changed {old_mode} -> {mode}")

    @property
    def is_output(self) -> bool:
        return self._mode.is_output

    @property
    def is_input(self) -> bool:
        return self._mode.is_input

    @property
    def output_voltage(self) -> float:
        """The commanded output voltage."""
        return self._output_voltage

    @property
    def pwm_duty(self) -> int:
        return self._pwm_duty

    # --- Writes ---

    def write(self, voltage: float) -> bool:
        """Commands a raw output voltage. Ignored unless the pin is an output."""
        if not self.is_output:
            logger.warning(f"Ignoring write to '{self.name}': pin is in {self._mode} mode")
            return False
        self._output_voltage = float(voltage)
        self._pwm_duty = 0
        return True

    def digital_write(self, high: bool) -> bool:
        if self._mode is not PinMode.OUTPUT:
            logger.warning(f"Attempting to write to '{self.name}' which is not in OUTPUT mode")
            return False
        self._output_voltage = self.vcc if high else 0.0
        self._pwm_duty = 0
        logger.debug(f"Digital write '{self.name}': {'HIGH' if high else 'LOW'}")
        return True

    def analog_write(self, voltage: float) -> bool:
        """Commands a DC level in ANALOG_OUTPUT mode, clamped to 0..VCC."""
        if self._mode is not PinMode.ANALOG_OUTPUT:
            logger.warning(f"'{self.name}' must be in ANALOG_OUTPUT mode for analog_write")
            return False
        self._output_voltage = min(max(float(voltage), 0.0), self.vcc)
        logger.debug(f"Analog write '{self.name}': {self._output_voltage} V")
        return True

    def pwm_write(self, duty: int) -> bool:
        """
        Commands a PWM duty cycle (0..255). The circuit sees the average voltage
        duty / 255 * VCC.
        """
        if not self.supports_pwm:
            logger.warning(f"'{self.name}' does not support PWM")
            return False
        if self._mode is not PinMode.OUTPUT:
            logger.warning(f"'{self.name}' must be in OUTPUT mode for PWM")
            return False
        self._pwm_duty = min(max(int(duty), 0), PWM_MAX_DUTY)
        self._output_voltage = self._pwm_duty / PWM_MAX_DUTY * self.vcc
        logger.debug(f"PWM write '{self.name}': {self._pwm_duty} ({self._output_voltage:.3f} V average)")
        return True

    # --- Reads ---

    def read(self) -> float:
        """The voltage seen at the pin if it is an input, else the commanded output."""
        return self._input_voltage if self.is_input else self._output_voltage

    def digital_read(self) -> bool:
        if not self.is_input:
            logger.warning(f"Attempting to read from '{self.name}' which is not in an input mode")
            return False
        return self._input_voltage > self.vcc / 2.0

    def analog_read(self) -> int:
        if self._mode is not PinMode.ANALOG_INPUT:
            logger.warning(f"'{self.name}' must be in ANALOG_INPUT mode for analog_read")
            return 0
        return voltage_to_adc(self._input_voltage, self.vcc)

    # --- Electrical contract ---

    def get_resistance(self) -> float:
        if self.is_output:
            return self.output_resistance
        if self._mode is PinMode.INPUT_PULLUP:
            return self.pullup_resistance
        return self.input_resistance

    @property
    def acts_as_source(self) -> bool:
        return self.is_output and self._output_voltage > SOURCE_VOLTAGE_THRESHOLD

    def update_state(self, voltage: float, current: float) -> None:
        super().update_state(voltage, current)
        if self.is_input:
            self._input_voltage = self._voltage
        self._set_overload(
            self.is_output and abs(self._current) > self.max_current,
            f"current {abs(self._current) * 1e3:.2f} mA exceeds max {self.max_current * 1e3:.2f} mA",
        )

    def reset(self) -> None:
        super().reset()
        self._output_voltage = 0.0
        self._input_voltage = 0.0
        self._pwm_duty = 0

    @provides(IStampContributor)
    class StampContributor:
        def get_stamp(self, component: 'DriverPin') -> Stamp:
            if component.acts_as_source:
                return Stamp(StampBehavior.VOLTAGE_SOURCE, voltage=component.output_voltage)
            if component.mode is PinMode.INPUT_PULLUP:
                return Stamp(
                    StampBehavior.CONDUCTANCE_TO_SUPPLY,
                    conductance=1.0 / component.pullup_resistance,
                    voltage=component.vcc,
                )
            return Stamp(StampBehavior.CONDUCTANCE, conductance=1.0 / component.get_resistance())

    @provides(IOverloadMonitor)
    class OverloadMonitor:
        def is_overloaded(self, component: 'DriverPin') -> bool:
            return component.is_overloaded

        def consume_overload_notice(self, component: 'DriverPin') -> Optional[str]:
            return component._take_overload_notice()

    @provides(IStateReporter)
    class StateReporter:
        def get_state(self, component: 'DriverPin') -> Dict[str, Any]:
            return {'mode': str(component.mode), 'value': component.read()}


@register_component("SensePin", ComponentKind.SENSE_PIN)
class SensePin(ComponentBase):
    """A passive, high-impedance probe that reports the voltage of its node."""

    def __init__(self, resistance: float = PIN_INPUT_RESISTANCE_OHM, vcc: float = PIN_VCC_V,
                 name: Optional[str] = None, instance_id: Optional[str] = None):
        super().__init__(name=name, instance_id=instance_id)
        self._resistance = resistance
        self.vcc = vcc

    @classmethod
    def declare_terminals(cls) -> List[str]:
        return ['pin']

    def get_resistance(self) -> float:
        return self._resistance

    def read(self) -> float:
        return self._voltage

    def digital_read(self) -> bool:
        return self._voltage > self.vcc / 2.0

    def analog_read(self) -> int:
        return voltage_to_adc(self._voltage, self.vcc)
