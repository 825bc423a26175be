"""Grid snapping for room positions and room sizes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from config import AREA_TOLERANCE
from planner.model import Bounds, Point


@dataclass
class DimensionFit:
    """Result of fitting a room's size to the grid (units)."""
    width: float
    height: float
    meets_requirement: bool
    area_change: float   # relative deviation from the target area


def snap_position(
    x: float,
    y: float,
    width: Optional[float],
    height: Optional[float],
    bounds: Optional[Bounds],
    spacing: float,
) -> Point:
    """Snap a room centre so its top-left corner sits on a grid line.

    Grid lines are measured from the bounds origin.  Without a size the bare
    point is snapped instead.  No bounds (or no spacing) means no grid.
    """
    if bounds is None or spacing <= 0:
        return x, y

    if width and height:
        left = x - width / 2
        top = y - height / 2
        snapped_left = round((left - bounds.min_x) / spacing) * spacing + bounds.min_x
        snapped_top = round((top - bounds.min_y) / spacing) * spacing + bounds.min_y
        return snapped_left + width / 2, snapped_top + height / 2

    snapped_x = round((x - bounds.min_x) / spacing) * spacing + bounds.min_x
    snapped_y = round((y - bounds.min_y) / spacing) * spacing + bounds.min_y
    return snapped_x, snapped_y


def snap_room(room, grid) -> None:
    """Snap *room* in place when the grid has position snapping enabled."""
    if not grid.position_snap_active:
        return
    room.x, room.y = snap_position(
        room.x, room.y, room.width, room.height, grid.bounds, grid.spacing_units,
    )


def snap_dimensions(
    room,
    spacing: float,
    area_tolerance: float = AREA_TOLERANCE,
    scale: float = 1.0,
) -> DimensionFit:
    """Pick whole-grid width/height closest to the room's target area.

    Tries floor/ceil multiples of *spacing* (metres) for both sides, each at
    least one grid unit.  A combination within *area_tolerance* always wins
    over one outside it.  ``room.width``/``room.height`` and the returned
    sizes are in units, ``scale`` units per metre.
    """
    width_m = room.width / scale
    height_m = room.height / scale
    target = room.area

    w_floor = math.floor(width_m / spacing)
    w_ceil = math.ceil(width_m / spacing)
    h_floor = math.floor(height_m / spacing)
    h_ceil = math.ceil(height_m / spacing)

    best: Optional[tuple[float, float, float]] = None
    for w_cells, h_cells in (
        (w_ceil, h_ceil), (w_ceil, h_floor), (w_floor, h_ceil), (w_floor, h_floor),
    ):
        w = max(w_cells, 1) * spacing
        h = max(h_cells, 1) * spacing
        if target > 0:
            deviation = abs(w * h - target) / target
        else:
            deviation = math.inf
        if best is None or deviation < best[2]:
            best = (w, h, deviation)

    w, h, deviation = best
    return DimensionFit(
        width=w * scale,
        height=h * scale,
        meets_requirement=deviation <= area_tolerance,
        area_change=deviation,
    )
