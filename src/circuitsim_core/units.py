# src/circuitsim_core/units.py
import logging
from typing import Union

import pint

logger = logging.getLogger(__name__)
ureg = pint.UnitRegistry()
Quantity = ureg.Quantity
logger.debug("Pint Unit Registry initialized.")

# --- Canonical dimensionality objects for explicit checks ---
RESISTANCE_DIMENSIONALITY = ureg.parse_expression('ohm').dimensionality
LENGTH_DIMENSIONALITY = ureg.parse_expression('meter').dimensionality
TIME_DIMENSIONALITY = ureg.parse_expression('second').dimensionality

QuantityLike = Union[float, int, str, Quantity]


def to_si_magnitude(value: QuantityLike, expected_unit: str) -> float:
    """
    Converts a user-supplied value into a plain float in `expected_unit`.

    Bare numbers are taken to already be in `expected_unit`. Strings are parsed
    by pint (e.g. ``"1 kohm"``, ``"15 cm"``, ``"10 ms"``) and must carry a
    compatible dimension; a dimensionless string such as ``"220"`` is read as a
    bare number.

    Raises:
        pint.DimensionalityError: if the value's dimension does not match.
        pint.UndefinedUnitError: if the string names an unknown unit.
        ValueError: if the value cannot be interpreted as a number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Boolean value {value!r} is not a valid {expected_unit} quantity.")
    if isinstance(value, (int, float)):
        return float(value)

    qty = ureg.Quantity(value) if isinstance(value, str) else value
    if not isinstance(qty, Quantity):
        # A string like "220" parses to a plain number.
        return float(qty)
    if qty.dimensionless:
        return float(qty.magnitude)
    if not qty.is_compatible_with(expected_unit):
        raise pint.DimensionalityError(qty.units, ureg.Unit(expected_unit))
    return float(qty.to(expected_unit).magnitude)
