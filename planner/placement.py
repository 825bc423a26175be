"""Discrete placement moves: docking, blocked-room detection, swaps, empty cells.

These are small combinatorial searches with post-hoc overlap checks, used by
the optimizer alongside its continuous pulls.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from config import EDGE_TOLERANCE
from planner.geometry import are_adjacent, rects_overlap
from planner.model import Bounds, Link, Point, Room
from planner.satisfaction import aggregate_satisfaction, satisfaction, unmet_neighbours

EDGES = ("top", "bottom", "left", "right")
OPPOSITE_EDGE = {"top": "bottom", "bottom": "top", "left": "right", "right": "left"}

BLOCK_TRIAL_STEP = 5.0      # units
SWAP_RADIUS = 200.0         # units
EMPTY_CELL_SPACING = 50.0   # units


@dataclass
class DockCandidate:
    """Centre for room_b flush against *edge* of room_a."""
    x: float
    y: float
    edge: str            # edge of room_a
    partner_edge: str    # edge of room_b
    distance: float      # displacement of room_b


# ---------------------------------------------------------------------------
# Docking
# ---------------------------------------------------------------------------

def free_edges(
    room: Room,
    rooms: Sequence[Room],
    edge_tolerance: float = EDGE_TOLERANCE,
) -> dict[str, bool]:
    """Which of *room*'s edges no other room is abutting."""
    edges = {edge: True for edge in EDGES}
    for other in rooms:
        if other.id == room.id:
            continue
        spans_x = (room.left < other.right - edge_tolerance and
                   room.right > other.left + edge_tolerance)
        spans_y = (room.top < other.bottom - edge_tolerance and
                   room.bottom > other.top + edge_tolerance)
        if spans_x and abs(room.top - other.bottom) <= edge_tolerance:
            edges["top"] = False
        if spans_x and abs(room.bottom - other.top) <= edge_tolerance:
            edges["bottom"] = False
        if spans_y and abs(room.left - other.right) <= edge_tolerance:
            edges["left"] = False
        if spans_y and abs(room.right - other.left) <= edge_tolerance:
            edges["right"] = False
    return edges


def _dock_position(room_a: Room, room_b: Room, edge: str) -> Point:
    if edge == "top":
        return room_a.x, room_a.y - room_a.height / 2 - room_b.height / 2
    if edge == "bottom":
        return room_a.x, room_a.y + room_a.height / 2 + room_b.height / 2
    if edge == "left":
        return room_a.x - room_a.width / 2 - room_b.width / 2, room_a.y
    return room_a.x + room_a.width / 2 + room_b.width / 2, room_a.y


def find_best_dock(
    room_a: Room,
    room_b: Room,
    rooms: Sequence[Room],
    edge_tolerance: float = EDGE_TOLERANCE,
) -> Optional[DockCandidate]:
    """Closest position placing *room_b* flush on a free edge of *room_a*.

    Only opposing free edges pair up (a.top with b.bottom, ...); room_b is
    centred on room_a's edge.  Candidates that would overlap a third room
    are rejected.  Returns None when nothing fits.
    """
    edges_a = free_edges(room_a, rooms, edge_tolerance)
    edges_b = free_edges(room_b, rooms, edge_tolerance)

    best: Optional[DockCandidate] = None
    for edge_a, free_a in edges_a.items():
        if not free_a:
            continue
        edge_b = OPPOSITE_EDGE[edge_a]
        if not edges_b[edge_b]:
            continue

        x, y = _dock_position(room_a, room_b, edge_a)
        trial = Room(id=room_b.id, name=room_b.name, area=room_b.area,
                     width=room_b.width, height=room_b.height, x=x, y=y)
        blocked = any(
            rects_overlap(trial, other)
            for other in rooms
            if other.id not in (room_a.id, room_b.id)
        )
        if blocked:
            continue

        distance = math.hypot(x - room_b.x, y - room_b.y)
        if best is None or distance < best.distance:
            best = DockCandidate(x=x, y=y, edge=edge_a,
                                 partner_edge=edge_b, distance=distance)
    return best


# ---------------------------------------------------------------------------
# Blocked rooms and swaps
# ---------------------------------------------------------------------------

def _step_blocked(room: Room, target: Room, rooms: Sequence[Room]) -> bool:
    """Would a short step from *room* towards *target* hit another room?"""
    dx = target.x - room.x
    dy = target.y - room.y
    distance = math.hypot(dx, dy)
    if distance == 0:
        return True
    trial = Room(id=room.id, name=room.name, area=room.area,
                 width=room.width, height=room.height,
                 x=room.x + dx / distance * BLOCK_TRIAL_STEP,
                 y=room.y + dy / distance * BLOCK_TRIAL_STEP)
    return any(rects_overlap(trial, other) for other in rooms if other.id != room.id)


def find_blocked_rooms(
    rooms: Sequence[Room],
    links: Sequence[Link],
    edge_tolerance: float = EDGE_TOLERANCE,
) -> list[Room]:
    """Rooms with unmet links that cannot step towards any unmet neighbour."""
    blocked = []
    for room in rooms:
        unmet = unmet_neighbours(room, rooms, links, edge_tolerance)
        if not unmet:
            continue
        if all(_step_blocked(room, target, rooms) for target in unmet):
            blocked.append(room)
    return blocked


def swap_positions(a: Room, b: Room):
    """Swap the centres of two rooms (sizes stay with their rooms)."""
    a.x, b.x = b.x, a.x
    a.y, b.y = b.y, a.y


def try_swap(
    a: Room,
    b: Room,
    rooms: Sequence[Room],
    links: Sequence[Link],
    edge_tolerance: float = EDGE_TOLERANCE,
) -> bool:
    """Swap *a* and *b* if that strictly improves the aggregate score."""
    before = aggregate_satisfaction(satisfaction(rooms, links, edge_tolerance))
    swap_positions(a, b)
    after = aggregate_satisfaction(satisfaction(rooms, links, edge_tolerance))
    if after > before:
        return True
    swap_positions(a, b)  # revert
    return False


# ---------------------------------------------------------------------------
# Empty space
# ---------------------------------------------------------------------------

def find_empty_cells(
    rooms: Sequence[Room],
    bounds: Optional[Bounds],
    min_spacing: float = EMPTY_CELL_SPACING,
) -> list[Point]:
    """Grid points inside *bounds* that no room (plus half a cell) covers."""
    if bounds is None or min_spacing <= 0:
        return []
    cells: list[Point] = []
    x = bounds.min_x + min_spacing
    while x < bounds.max_x - min_spacing:
        y = bounds.min_y + min_spacing
        while y < bounds.max_y - min_spacing:
            covered = any(
                abs(room.x - x) < room.width / 2 + min_spacing / 2 and
                abs(room.y - y) < room.height / 2 + min_spacing / 2
                for room in rooms
            )
            if not covered:
                cells.append((x, y))
            y += min_spacing
        x += min_spacing
    return cells


def touching_count(room: Room, neighbours: Sequence[Room],
                   edge_tolerance: float = EDGE_TOLERANCE) -> int:
    return sum(1 for other in neighbours if are_adjacent(room, other, edge_tolerance))
