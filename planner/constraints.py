"""Hard constraints: rooms never overlap and stay inside the boundary.

Both passes are bounded-effort and meant to be re-applied every optimizer
step rather than run to convergence once.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from planner.geometry import Point, axis_sign, edge_gaps, room_inside
from planner.model import Room

log = logging.getLogger(__name__)

CONTACT_EPSILON = 1e-9   # units; float residue left by a previous separation


def separate_pair(a: Room, b: Room, pinned: set[str]) -> bool:
    """Push *a* and *b* apart along the axis of least penetration.

    Returns True if the pair overlapped.  Both unpinned: each moves half the
    penetration.  One pinned: the other is placed flush against it.
    """
    a_pinned = a.id in pinned
    b_pinned = b.id in pinned
    if a_pinned and b_pinned:
        return False

    dx, dy, touch_x, touch_y = edge_gaps(a, b)
    overlap_x = touch_x - abs(dx)
    overlap_y = touch_y - abs(dy)
    if overlap_x <= CONTACT_EPSILON or overlap_y <= CONTACT_EPSILON:
        return False

    along_x = overlap_x < overlap_y
    sx, sy = axis_sign(dx), axis_sign(dy)

    if not a_pinned and not b_pinned:
        if along_x:
            a.x -= sx * overlap_x / 2
            b.x += sx * overlap_x / 2
        else:
            a.y -= sy * overlap_y / 2
            b.y += sy * overlap_y / 2
    elif not a_pinned:
        if along_x:
            a.x = b.x - sx * touch_x
        else:
            a.y = b.y - sy * touch_y
    else:
        if along_x:
            b.x = a.x + sx * touch_x
        else:
            b.y = a.y + sy * touch_y
    return True


def resolve_overlaps(
    rooms: Sequence[Room],
    pinned: Iterable[str] = (),
    max_iterations: int = 5,
) -> bool:
    """Separate overlapping rooms pairwise, at most *max_iterations* passes.

    Returns True when the final pass found no overlap.  Dense layouts may
    still overlap after the cap; callers re-run this every step.
    """
    pinned = set(pinned)
    rooms = list(rooms)
    for _ in range(max_iterations):
        found = False
        for i in range(len(rooms)):
            for j in range(i + 1, len(rooms)):
                if separate_pair(rooms[i], rooms[j], pinned):
                    found = True
        if not found:
            return True
    return False


def enforce_boundary(
    rooms: Iterable[Room],
    boundary: Optional[Sequence[Point]],
    pinned: Iterable[str] = (),
) -> list[str]:
    """Roll rooms that left the boundary back to their last valid centre.

    Rooms that are inside record their centre as the new last valid one.
    Returns the ids of rooms that were rolled back.
    """
    if not boundary:
        return []
    pinned = set(pinned)
    reverted = []
    for room in rooms:
        if room.id in pinned:
            continue
        if room_inside(room, boundary):
            room.prev_x, room.prev_y = room.x, room.y
            continue
        if room.prev_x is not None and room.prev_y is not None:
            room.x, room.y = room.prev_x, room.prev_y
            reverted.append(room.id)
    if reverted:
        log.debug("Rolled back %d room(s) to last in-boundary position", len(reverted))
    return reverted
