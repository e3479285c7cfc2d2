"""Weight unit conversion and display formatting.

Weights are stored in kilograms everywhere.  These helpers are the only place
pounds appear, and they never touch stored records.
"""

from __future__ import annotations

from dosely.models.users import MeasurementUnit

KG_TO_LB = 2.20462

SENTINEL = "--"


def kg_to_lb(kg: float) -> float:
    return kg * KG_TO_LB


def lb_to_kg(lb: float) -> float:
    return lb / KG_TO_LB


def to_display(kg: float, unit: MeasurementUnit) -> float:
    """Convert a stored kilogram value into the user's unit."""
    if unit is MeasurementUnit.imperial:
        return kg_to_lb(kg)
    return kg


def from_display(value: float, unit: MeasurementUnit) -> float:
    """Convert a value typed in the user's unit back to kilograms."""
    if unit is MeasurementUnit.imperial:
        return lb_to_kg(value)
    return value


def format_weight(
    kg: float | None,
    unit: MeasurementUnit,
    *,
    with_unit: bool = True,
    decimals: int = 1,
    sentinel: str = SENTINEL,
) -> str:
    """Format a kilogram value for display, e.g. ``"11.0 lbs"``.

    ``None`` yields the sentinel rather than raising.
    """
    if kg is None:
        return sentinel
    text = f"{to_display(kg, unit):.{decimals}f}"
    return f"{text} {unit.weight_unit}" if with_unit else text
