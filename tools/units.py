"""Unit conversion utilities.

The planner works in layout units internally. Input areas and grid spacing
are in metres; SCALE_FACTOR layout units make one metre.
"""

from config import SCALE_FACTOR


def m_to_units(metres: float, scale: float = SCALE_FACTOR) -> float:
    return metres * scale


def units_to_m(units: float, scale: float = SCALE_FACTOR) -> float:
    return units / scale


def room_size_m(room, scale: float = SCALE_FACTOR) -> tuple[float, float]:
    """(width, height) of a room in metres."""
    return units_to_m(room.width, scale), units_to_m(room.height, scale)
