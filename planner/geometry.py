"""Geometric predicates for axis-aligned rooms and polygon boundaries.

Rooms are centre-positioned rectangles (anything with ``x``, ``y``,
``width``, ``height``).  None of these functions raise on degenerate input:
a missing or malformed boundary simply places no constraint on rooms.
"""

from __future__ import annotations

from typing import Optional, Sequence

from config import EDGE_TOLERANCE

Point = tuple[float, float]


def polygon_area(polygon: Sequence[Point]) -> float:
    """Signed shoelace area."""
    total = 0.0
    n = len(polygon)
    for i in range(n):
        x1, y1 = polygon[i][0], polygon[i][1]
        x2, y2 = polygon[(i + 1) % n][0], polygon[(i + 1) % n][1]
        total += x1 * y2 - x2 * y1
    return total / 2


def is_usable_polygon(polygon: Optional[Sequence[Point]]) -> bool:
    """At least three points enclosing a non-zero area."""
    if not polygon or len(polygon) < 3:
        return False
    try:
        return abs(polygon_area(polygon)) > 1e-12
    except (TypeError, IndexError):
        return False


def point_in_polygon(point: Point, polygon: Optional[Sequence[Point]]) -> bool:
    """Ray-casting parity test.

    Fails open: returns True when the polygon is absent or degenerate, so
    callers can treat a bad boundary as "no containment constraint".
    """
    if not is_usable_polygon(polygon):
        return True

    x, y = point[0], point[1]
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i][0], polygon[i][1]
        xj, yj = polygon[j][0], polygon[j][1]
        # (yi > y) != (yj > y) excludes horizontal edges, so yj - yi != 0
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def rect_corners(room) -> list[Point]:
    """Corners clockwise from top-left (y grows downwards)."""
    hw = room.width / 2
    hh = room.height / 2
    return [
        (room.x - hw, room.y - hh),
        (room.x + hw, room.y - hh),
        (room.x + hw, room.y + hh),
        (room.x - hw, room.y + hh),
    ]


def room_inside(room, boundary: Optional[Sequence[Point]]) -> bool:
    """All four corners inside the boundary.

    Corner containment only: an edge may still cross a concave notch of the
    boundary between two corners.
    """
    return all(point_in_polygon(c, boundary) for c in rect_corners(room))


def axis_sign(delta: float) -> float:
    """Direction of *delta*; zero counts as positive so coincident rooms still part."""
    return 1.0 if delta >= 0 else -1.0


def touch_distances(a, b) -> tuple[float, float]:
    """Centre distances at which *a* and *b* would be wall-flush on x and y."""
    return (a.width + b.width) / 2, (a.height + b.height) / 2


def edge_gaps(a, b) -> tuple[float, float, float, float]:
    """Centre offset of *b* from *a* plus the wall-flush distances.

    Returns ``(dx, dy, touch_x, touch_y)``.  ``abs(dx) - touch_x`` is the gap
    between the facing walls on x, negative while the rooms overlap on x.
    """
    touch_x, touch_y = touch_distances(a, b)
    return b.x - a.x, b.y - a.y, touch_x, touch_y


def rects_overlap(a, b, padding: float = 0.0) -> bool:
    """Minkowski-sum test on the centre offsets; touching is not overlap."""
    touch_x, touch_y = touch_distances(a, b)
    return (abs(b.x - a.x) < touch_x + padding and
            abs(b.y - a.y) < touch_y + padding)


def are_adjacent(a, b, edge_tolerance: float = EDGE_TOLERANCE) -> bool:
    """Two rooms share a wall.

    Facing edges must lie within *edge_tolerance* of each other and the
    rooms' spans on the other axis must overlap.  Symmetric, not transitive.
    """
    a_left, a_right = a.x - a.width / 2, a.x + a.width / 2
    a_top, a_bottom = a.y - a.height / 2, a.y + a.height / 2
    b_left, b_right = b.x - b.width / 2, b.x + b.width / 2
    b_top, b_bottom = b.y - b.height / 2, b.y + b.height / 2

    side_by_side = (
        (abs(a_left - b_right) <= edge_tolerance or
         abs(a_right - b_left) <= edge_tolerance) and
        a_top < b_bottom and a_bottom > b_top
    )
    stacked = (
        (abs(a_top - b_bottom) <= edge_tolerance or
         abs(a_bottom - b_top) <= edge_tolerance) and
        a_left < b_right and a_right > b_left
    )
    return side_by_side or stacked
