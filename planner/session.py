"""Interactive session operations on a Layout outside an optimization run.

These are the edits a user makes between runs: settling the layout after a
change, fitting room sizes to the grid (and undoing it), dragging a room,
and re-scattering everything around the boundary centre.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from config import AREA_TOLERANCE, EDGE_TOLERANCE
from planner.constraints import enforce_boundary, resolve_overlaps
from planner.geometry import are_adjacent, edge_gaps
from planner.grid import snap_dimensions, snap_room
from planner.model import Layout, Room
from planner.satisfaction import layout_satisfaction

log = logging.getLogger(__name__)

SCATTER_JITTER = 100.0   # units, full width of the scatter square


@dataclass
class AreaWarning:
    """A room whose grid-fitted size misses its target area."""
    room_id: str
    name: str
    original_area: float   # m²
    new_area: float        # m²
    area_change: float     # relative

    def __str__(self) -> str:
        return (f"{self.name}: {self.original_area:.1f}m² -> {self.new_area:.1f}m² "
                f"({self.area_change * 100:.1f}% change)")


# ---------------------------------------------------------------------------
# Settle
# ---------------------------------------------------------------------------

def _align_axis(a: Room, b: Room, axis: str, touch: float, pinned: set[str]):
    """Make *a* and *b* exactly flush on *axis* ("x" or "y")."""
    pa = getattr(a, axis)
    pb = getattr(b, axis)
    if a.id not in pinned and b.id not in pinned:
        mid = (pa + pb) / 2
        if pa < pb:
            setattr(a, axis, mid - touch / 2)
            setattr(b, axis, mid + touch / 2)
        else:
            setattr(a, axis, mid + touch / 2)
            setattr(b, axis, mid - touch / 2)
    elif a.id in pinned:
        setattr(b, axis, pa + touch if pa < pb else pa - touch)
    else:
        setattr(a, axis, pb + touch if pb < pa else pb - touch)


def align_linked_edges(layout: Layout, edge_tolerance: float = EDGE_TOLERANCE) -> int:
    """Snap nearly-flush linked rooms exactly flush. Returns pairs aligned."""
    threshold = edge_tolerance + 1
    pinned = layout.pinned
    aligned = 0
    for link in layout.active_links():
        a = layout.rooms[link.source_id]
        b = layout.rooms[link.target_id]
        if a.id in pinned and b.id in pinned:
            continue
        dx, dy, touch_x, touch_y = edge_gaps(a, b)
        dx, dy = abs(dx), abs(dy)

        if abs(dx - touch_x) <= threshold and dy < touch_y - threshold:
            _align_axis(a, b, "x", touch_x, pinned)
            aligned += 1
        if abs(dy - touch_y) <= threshold and dx < touch_x - threshold:
            _align_axis(a, b, "y", touch_y, pinned)
            aligned += 1
    return aligned


def settle(layout: Layout, edge_tolerance: float = EDGE_TOLERANCE):
    """One settling pass after any change to the layout.

    Boundary rollback, overlap separation, grid snap of unpinned rooms and
    flush alignment of linked rooms whose walls are within a unit or so of
    touching.
    """
    rooms = layout.room_list()
    enforce_boundary(rooms, layout.boundary, layout.pinned)
    resolve_overlaps(rooms, layout.pinned)
    if layout.grid.position_snap_active:
        for room in rooms:
            if room.id not in layout.pinned:
                snap_room(room, layout.grid)
    align_linked_edges(layout, edge_tolerance)


def move_room(layout: Layout, room_id: str, x: float, y: float) -> Room:
    """Drag a room to (x, y), snapped to the grid, then keep constraints."""
    layout._check_unlocked()
    room = layout.get(room_id)
    room.move_to(x, y)
    snap_room(room, layout.grid)
    enforce_boundary([room], layout.boundary)
    resolve_overlaps(layout.room_list(), layout.pinned)
    return room


# ---------------------------------------------------------------------------
# Grid-size fitting
# ---------------------------------------------------------------------------

def adjust_room_sizes(
    layout: Layout,
    spacing: Optional[float] = None,
    area_tolerance: float = AREA_TOLERANCE,
) -> list[AreaWarning]:
    """Fit every room's width and height to whole grid cells.

    The sizes before the first adjustment are remembered so that
    ``restore_room_sizes`` can undo it; adjusting twice keeps the very first
    sizes.  Returns a warning per room whose fitted area misses the target by
    more than *area_tolerance*.
    """
    layout._check_unlocked()
    grid = layout.grid
    spacing = spacing or grid.spacing
    scale = grid.scale

    if not layout.original_sizes:
        layout.original_sizes.update(
            {rid: (r.width, r.height) for rid, r in layout.rooms.items()}
        )

    warnings = []
    for room in layout.rooms.values():
        fit = snap_dimensions(room, spacing, area_tolerance, scale=scale)
        room.width = fit.width
        room.height = fit.height
        room.grid_adjusted = True
        room.meets_area_requirement = fit.meets_requirement
        if not fit.meets_requirement:
            warnings.append(AreaWarning(
                room_id=room.id,
                name=room.name,
                original_area=room.area,
                new_area=fit.width * fit.height / (scale * scale),
                area_change=fit.area_change,
            ))

    grid.snap_sizes = True
    if warnings:
        log.warning("%d room(s) miss their target area on a %.2fm grid",
                    len(warnings), spacing)
        for w in warnings:
            log.debug("  %s", w)
    return warnings


def restore_room_sizes(layout: Layout) -> int:
    """Undo ``adjust_room_sizes``. Returns the number of rooms restored."""
    layout._check_unlocked()
    restored = 0
    for rid, (width, height) in layout.original_sizes.items():
        room = layout.rooms.get(rid)
        if room is None:
            continue
        room.width = width
        room.height = height
        room.grid_adjusted = False
        room.meets_area_requirement = True
        restored += 1
    layout.original_sizes.clear()
    layout.grid.snap_sizes = False
    return restored


# ---------------------------------------------------------------------------
# Scatter and statistics
# ---------------------------------------------------------------------------

def scatter(layout: Layout, rng: Optional[random.Random] = None,
            jitter: float = SCATTER_JITTER) -> int:
    """Throw unpinned rooms into a square around the boundary centre.

    Does nothing without a boundary. Returns the number of rooms moved.
    """
    layout._check_unlocked()
    bounds = layout.grid.bounds
    if bounds is None:
        return 0
    rng = rng or random.Random()
    cx, cy = bounds.center
    moved = 0
    for room in layout.rooms.values():
        if room.id in layout.pinned:
            continue
        room.x = cx + (rng.random() - 0.5) * jitter
        room.y = cy + (rng.random() - 0.5) * jitter
        moved += 1
    return moved


def layout_stats(layout: Layout, edge_tolerance: float = EDGE_TOLERANCE) -> dict:
    ratios, score = layout_satisfaction(layout, edge_tolerance)
    links = layout.active_links()
    met = sum(1 for l in links
              if are_adjacent(layout.rooms[l.source_id], layout.rooms[l.target_id],
                              edge_tolerance))
    total_area = sum(r.area for r in layout.rooms.values())
    return {
        "rooms": len(layout),
        "links": len(links),
        "links_met": met,
        "pinned": len(layout.pinned),
        "total_area": total_area,
        "satisfaction": score,
        "fully_satisfied_rooms": sum(1 for v in ratios.values() if v >= 1),
        "area_warnings": sum(1 for r in layout.rooms.values()
                             if not r.meets_area_requirement),
    }
