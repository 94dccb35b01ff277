# src/circuitsim_core/components/elements.py
"""
This module provides the concrete implementations for the two-terminal circuit
elements: Resistor, Wire and the nonlinear LED.
"""

import logging
import math
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pint

# --- Foundational Imports ---
from ..units import QuantityLike, to_si_magnitude
from ..constants import IDEAL_RESISTANCE_OHM

# --- Core Component Model Imports ---
from .base import ComponentBase, register_component
from .base_enums import ComponentKind

# --- Capability System Imports ---
from .capabilities import IOverloadMonitor, IStateReporter, provides
from .exceptions import ComponentError


logger = logging.getLogger(__name__)


def _validated_positive_magnitude(value: QuantityLike, component_id: str, param_name: str, expected_unit: str) -> float:
    """
    Converts a float or pint-parsable string into a positive, finite SI value,
    raising a canonical `ComponentError` for any violation.
    """
    try:
        magnitude = to_si_magnitude(value, expected_unit)
    except (pint.DimensionalityError, pint.UndefinedUnitError, TypeError, ValueError) as e:
        raise ComponentError(
            component_id=component_id,
            details=f"Validation failed for parameter '{param_name}' ({value!r}): {e}"
        ) from e

    if not math.isfinite(magnitude) or magnitude <= 0.0:
        raise ComponentError(
            component_id=component_id,
            details=f"Parameter '{param_name}' must be positive and finite, got {magnitude} {expected_unit}."
        )
    return magnitude


@register_component("Resistor", ComponentKind.RESISTOR)
class Resistor(ComponentBase):
    """Represents an ideal, fixed Resistor component."""

    def __init__(self, resistance: QuantityLike = 1000.0, name: Optional[str] = None, instance_id: Optional[str] = None):
        super().__init__(name=name, instance_id=instance_id)
        self._resistance = _validated_positive_magnitude(resistance, self.instance_id, "resistance", "ohm")

    @classmethod
    def declare_terminals(cls) -> List[str]:
        return ['p1', 'p2']

    def get_resistance(self) -> float:
        return self._resistance

    def set_resistance(self, resistance: QuantityLike) -> None:
        self._resistance = _validated_positive_magnitude(resistance, self.instance_id, "resistance", "ohm")
        logger.debug(f"Resistor '{self.name}' set to {self._resistance} ohm")

    resistance = property(get_resistance, set_resistance)


# --- Wire ---

COPPER_RESISTIVITY_OHM_M: float = 1.68e-8
DEFAULT_WIRE_GAUGE_AWG: int = 22
MIN_WIRE_GAUGE_AWG: int = 1
MAX_WIRE_GAUGE_AWG: int = 50


def awg_diameter_m(gauge: int) -> float:
    """Conductor diameter of an AWG gauge: d(mm) = 0.127 * 92^((36 - AWG) / 39)."""
    return 0.127 * 92.0 ** ((36.0 - gauge) / 39.0) * 1e-3


def polyline_length_m(points_mm: Iterable[Tuple[float, float]]) -> float:
    """Total length of a polyline whose vertices are given in millimetres, in metres."""
    pts = np.asarray(list(points_mm), dtype=float)
    if pts.ndim != 2 or len(pts) < 2:
        return 0.0
    segments = np.diff(pts, axis=0)
    return float(np.hypot(segments[:, 0], segments[:, 1]).sum()) * 1e-3


@register_component("Wire", ComponentKind.WIRE)
class Wire(ComponentBase):
    """
    A conductor between two nodes.

    By default a wire is ideal and reports `IDEAL_RESISTANCE_OHM`. With
    ``use_calculated_resistance`` it reports R = rho * L / A for a copper
    conductor of the configured AWG gauge, never below the ideal floor. A
    zero-length wire is always ideal.
    """

    def __init__(
        self,
        length: QuantityLike = 0.0,
        gauge: int = DEFAULT_WIRE_GAUGE_AWG,
        use_calculated_resistance: bool = False,
        name: Optional[str] = None,
        instance_id: Optional[str] = None,
    ):
        super().__init__(name=name, instance_id=instance_id)
        self._length_m: float = 0.0
        self._gauge: int = DEFAULT_WIRE_GAUGE_AWG
        self._points: List[Tuple[float, float]] = []
        self.use_calculated_resistance: bool = use_calculated_resistance
        self.set_length(length)
        self.set_gauge(gauge)

    @classmethod
    def declare_terminals(cls) -> List[str]:
        return ['p1', 'p2']

    @property
    def length(self) -> float:
        """Conductor length in metres."""
        return self._length_m

    def set_length(self, length: QuantityLike) -> None:
        try:
            value = to_si_magnitude(length, "meter")
        except (pint.DimensionalityError, pint.UndefinedUnitError, TypeError, ValueError) as e:
            raise ComponentError(component_id=self.instance_id, details=f"Invalid wire length {length!r}: {e}") from e
        if not math.isfinite(value) or value < 0.0:
            raise ComponentError(component_id=self.instance_id, details=f"Wire length must be non-negative, got {value} m.")
        self._length_m = value

    @property
    def gauge(self) -> int:
        return self._gauge

    def set_gauge(self, gauge: int) -> None:
        if isinstance(gauge, bool) or not isinstance(gauge, int) or not MIN_WIRE_GAUGE_AWG <= gauge <= MAX_WIRE_GAUGE_AWG:
            raise ComponentError(
                component_id=self.instance_id,
                details=f"Wire gauge must be an integer AWG in {MIN_WIRE_GAUGE_AWG}..{MAX_WIRE_GAUGE_AWG}, got {gauge!r}."
            )
        self._gauge = gauge

    # --- Polyline routing ---

    @property
    def points(self) -> List[Tuple[float, float]]:
        return list(self._points)

    def set_points(self, points_mm: Sequence[Tuple[float, float]]) -> None:
        """Replaces the routing polyline (millimetres) and recomputes the length."""
        self._points = [(float(x), float(y)) for x, y in points_mm]
        self._length_m = polyline_length_m(self._points)

    def add_point(self, point_mm: Tuple[float, float]) -> None:
        self.set_points(self._points + [point_mm])

    def clear_points(self) -> None:
        self._points = []
        self._length_m = 0.0

    def calculate_resistance(self) -> float:
        if self._length_m <= 0.0:
            return IDEAL_RESISTANCE_OHM
        diameter = awg_diameter_m(self._gauge)
        area = math.pi * (diameter / 2.0) ** 2
        return max(COPPER_RESISTIVITY_OHM_M * self._length_m / area, IDEAL_RESISTANCE_OHM)

    def get_resistance(self) -> float:
        if self.use_calculated_resistance:
            return self.calculate_resistance()
        return IDEAL_RESISTANCE_OHM


# --- LED ---

LED_OFF_RESISTANCE_OHM: float = 1.0e6
LED_MIN_CONDUCTION_CURRENT_A: float = 1.0e-6
LED_SERIES_RESISTANCE_OHM: float = 25.0
LED_FORWARD_CURRENT_A: float = 0.02
LED_THERMAL_LIMIT_W: float = 0.1
LED_BRIGHTNESS_CHANGE_THRESHOLD: float = 0.01


class LEDColor(Enum):
    """Standard LED presets as (forward voltage in V, maximum current in A)."""
    RED = (1.8, 0.025)
    GREEN = (2.2, 0.025)
    YELLOW = (2.0, 0.025)
    BLUE = (3.2, 0.020)
    WHITE = (3.2, 0.020)

    @property
    def forward_voltage(self) -> float:
        return self.value[0]

    @property
    def max_current(self) -> float:
        return self.value[1]


@register_component("LED", ComponentKind.LED)
class LED(ComponentBase):
    """
    A light-emitting diode with an empirical, current-dependent resistance.

    The LED conducts only when forward biased (positive voltage and current),
    the voltage is at or above the color's forward threshold and the current
    exceeds `LED_MIN_CONDUCTION_CURRENT_A`. While conducting its resistance is
    ``Vf / I + 25 ohm``; otherwise it reports `LED_OFF_RESISTANCE_OHM`.

    Terminal 0 is the anode and terminal 1 the cathode.
    """

    def __init__(
        self,
        color: LEDColor = LEDColor.RED,
        forward_voltage: Optional[float] = None,
        max_current: Optional[float] = None,
        name: Optional[str] = None,
        instance_id: Optional[str] = None,
    ):
        super().__init__(name=name, instance_id=instance_id)
        self._color = color
        self._forward_voltage = color.forward_voltage
        self._max_current = color.max_current
        self.forward_current: float = LED_FORWARD_CURRENT_A
        self.thermal_limit: float = LED_THERMAL_LIMIT_W
        if forward_voltage is not None:
            self.set_forward_voltage(forward_voltage)
        if max_current is not None:
            self.set_max_current(max_current)

        self._is_on: bool = False
        self._brightness: float = 0.0
        self._dynamic_resistance: float = LED_OFF_RESISTANCE_OHM

    @classmethod
    def declare_terminals(cls) -> List[str]:
        return ['anode', 'cathode']

    @classmethod
    def create_standard(cls, color_name: str, **kwargs) -> "LED":
        """Builds a preset LED by color name; unknown names fall back to red."""
        try:
            color = LEDColor[color_name.strip().upper()]
        except KeyError:
            logger.warning(f"Unknown LED type '{color_name}' - defaulting to red")
            color = LEDColor.RED
        kwargs.setdefault('name', f"{color_name} LED")
        return cls(color=color, **kwargs)

    # --- Configuration ---

    @property
    def color(self) -> LEDColor:
        return self._color

    def set_color(self, color: LEDColor) -> None:
        """Switching color also applies the color's forward-voltage preset."""
        self._color = color
        self._forward_voltage = color.forward_voltage

    @property
    def forward_voltage(self) -> float:
        return self._forward_voltage

    def set_forward_voltage(self, voltage: float) -> None:
        self._forward_voltage = _validated_positive_magnitude(voltage, self.instance_id, "forward_voltage", "volt")

    @property
    def max_current(self) -> float:
        return self._max_current

    def set_max_current(self, current: float) -> None:
        self._max_current = _validated_positive_magnitude(current, self.instance_id, "max_current", "ampere")

    # --- State ---

    @property
    def is_on(self) -> bool:
        return self._is_on

    @property
    def brightness(self) -> float:
        return self._brightness

    def get_resistance(self) -> float:
        return self._dynamic_resistance

    def calculate_brightness(self, current: float) -> float:
        if current <= LED_MIN_CONDUCTION_CURRENT_A:
            return 0.0
        if current <= self.forward_current:
            return current / self.forward_current
        excess = current - self.forward_current
        max_excess = self._max_current - self.forward_current
        if max_excess > 0.0:
            return min(1.0, 1.0 + 0.3 * math.log(1.0 + excess / max_excess))
        return 1.0

    def calculate_dynamic_resistance(self, current: float) -> float:
        if current <= LED_MIN_CONDUCTION_CURRENT_A:
            return LED_OFF_RESISTANCE_OHM
        return LED_SERIES_RESISTANCE_OHM + self._forward_voltage / current

    def update_state(self, voltage: float, current: float) -> None:
        super().update_state(voltage, current)

        forward_biased = self._voltage > 0.0 and self._current > 0.0
        above_threshold = abs(self._voltage) >= self._forward_voltage
        conducting = abs(self._current) > LED_MIN_CONDUCTION_CURRENT_A
        self._is_on = forward_biased and above_threshold and conducting

        if self._is_on:
            self._brightness = self.calculate_brightness(abs(self._current))
            self._dynamic_resistance = self.calculate_dynamic_resistance(abs(self._current))
        else:
            self._brightness = 0.0
            self._dynamic_resistance = LED_OFF_RESISTANCE_OHM

        self._check_overload()

    def _check_overload(self) -> None:
        abs_current = abs(self._current)
        power = self.get_power_dissipation()
        if abs_current > self._max_current:
            self._set_overload(
                True, f"current {abs_current * 1e3:.2f} mA exceeds max {self._max_current * 1e3:.2f} mA"
            )
        elif power > self.thermal_limit:
            self._set_overload(
                True, f"power {power * 1e3:.2f} mW exceeds thermal limit {self.thermal_limit * 1e3:.2f} mW"
            )
        else:
            self._set_overload(False)

    def reset(self) -> None:
        super().reset()
        self._is_on = False
        self._brightness = 0.0
        self._dynamic_resistance = LED_OFF_RESISTANCE_OHM

    @provides(IOverloadMonitor)
    class OverloadMonitor:
        def is_overloaded(self, component: 'LED') -> bool:
            return component.is_overloaded

        def consume_overload_notice(self, component: 'LED') -> Optional[str]:
            return component._take_overload_notice()

    @provides(IStateReporter)
    class StateReporter:
        def get_state(self, component: 'LED') -> Dict[str, Any]:
            return {'is_on': component.is_on, 'brightness': component.brightness}
