"""Data model for the adjacency layout planner.

Rooms live in an arena (``Layout.rooms``) keyed by a stable string id.  Every
component looks rooms up by id and mutates the ``Room`` record in place, so a
renderer or exporter holding the same ``Layout`` always sees current
positions.  Links are normalised at ingestion into ``(source_id, target_id)``
with ``source_id <= target_id`` and at most one link per unordered pair.

Coordinates are layout units (``SCALE_FACTOR`` units per metre); room areas and
grid spacing are in metres.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from config import DEFAULT_GRID_SPACING, MIN_GRID_SPACING, MIN_SIZE, SCALE_FACTOR
from planner.errors import LayoutBusyError, UnknownRoomError

Point = tuple[float, float]

# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Bounds:
    """Axis-aligned bounding box of the boundary polygon."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_points(cls, points: Optional[Iterable[Point]]) -> Optional["Bounds"]:
        pts = list(points or [])
        if not pts:
            return None
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return cls(min(xs), min(ys), max(xs), max(ys))

    @property
    def center(self) -> Point:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)


@dataclass
class Room:
    """A rectangle positioned by its centre."""
    id: str
    name: str
    area: float              # target area, m²
    width: float             # X extent, units
    height: float            # Y extent, units
    x: float = 0.0
    y: float = 0.0
    floor: str = ""
    zone: str = ""
    grid_adjusted: bool = False
    meets_area_requirement: bool = True
    # last centre known to be inside the boundary
    prev_x: Optional[float] = None
    prev_y: Optional[float] = None

    @classmethod
    def from_area(
        cls,
        room_id: str,
        area: float,
        name: Optional[str] = None,
        x: float = 0.0,
        y: float = 0.0,
        floor: str = "",
        zone: str = "",
        scale: float = SCALE_FACTOR,
        min_size: float = MIN_SIZE,
    ) -> "Room":
        """Square room sized from its target area, never below *min_size*."""
        side = max(math.sqrt(max(area, 0.0)) * scale, min_size)
        return cls(
            id=room_id, name=name or room_id, area=area,
            width=side, height=side, x=x, y=y, floor=floor, zone=zone,
        )

    @property
    def left(self) -> float:
        return self.x - self.width / 2

    @property
    def right(self) -> float:
        return self.x + self.width / 2

    @property
    def top(self) -> float:
        return self.y - self.height / 2

    @property
    def bottom(self) -> float:
        return self.y + self.height / 2

    @property
    def center(self) -> Point:
        return (self.x, self.y)

    def move_to(self, x: float, y: float):
        self.x = x
        self.y = y


@dataclass(frozen=True)
class Link:
    """Required adjacency between two rooms.

    ``type`` only distinguishes connection variants for display; the solver
    treats every link as a required adjacency.
    """
    source_id: str
    target_id: str
    type: int = 1

    @classmethod
    def between(cls, a: str, b: str, link_type: int = 1) -> "Link":
        if b < a:
            a, b = b, a
        return cls(source_id=a, target_id=b, type=int(link_type))

    @property
    def key(self) -> tuple[str, str]:
        return (self.source_id, self.target_id)

    def touches(self, room_id: str) -> bool:
        return room_id == self.source_id or room_id == self.target_id

    def other(self, room_id: str) -> Optional[str]:
        if room_id == self.source_id:
            return self.target_id
        if room_id == self.target_id:
            return self.source_id
        return None


@dataclass
class Grid:
    """Snapping grid. ``spacing`` is in metres, ``bounds`` in units."""
    spacing: float = DEFAULT_GRID_SPACING
    scale: float = SCALE_FACTOR
    snap_positions: bool = True
    snap_sizes: bool = False
    bounds: Optional[Bounds] = None

    def __post_init__(self):
        if self.spacing < MIN_GRID_SPACING:
            raise ValueError(
                f"grid spacing {self.spacing} is below the minimum of {MIN_GRID_SPACING}"
            )

    @property
    def spacing_units(self) -> float:
        return self.spacing * self.scale

    @property
    def position_snap_active(self) -> bool:
        return self.snap_positions and self.bounds is not None


# ---------------------------------------------------------------------------
# Layout arena
# ---------------------------------------------------------------------------

@dataclass
class Layout:
    """All state one optimization run works on."""
    rooms: dict[str, Room] = field(default_factory=dict)
    links: list[Link] = field(default_factory=list)
    boundary: Optional[list[Point]] = None
    pinned: set[str] = field(default_factory=set)
    grid: Grid = field(default_factory=Grid)
    locked: bool = False
    # sizes before grid-size adjustment, restored when size snapping is turned off
    original_sizes: dict[str, tuple[float, float]] = field(default_factory=dict)
    # layout a floor view was taken from; runs on the view lock it too
    parent: Optional["Layout"] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.boundary is not None:
            self.boundary = [(float(p[0]), float(p[1])) for p in self.boundary]
            self.grid.bounds = Bounds.from_points(self.boundary)

    # === Lookup ============================================================

    def get(self, room_id: str) -> Room:
        try:
            return self.rooms[room_id]
        except KeyError:
            raise UnknownRoomError(room_id) from None

    def room_list(self) -> list[Room]:
        return list(self.rooms.values())

    def __contains__(self, room_id: str) -> bool:
        return room_id in self.rooms

    def __len__(self) -> int:
        return len(self.rooms)

    def active_links(self) -> list[Link]:
        """Links whose endpoints both exist."""
        return [l for l in self.links
                if l.source_id in self.rooms and l.target_id in self.rooms]

    def neighbours(self, room_id: str) -> list[Room]:
        """Rooms that *room_id* is required to touch."""
        out = []
        for link in self.links:
            other = link.other(room_id)
            if other is not None and other in self.rooms:
                out.append(self.rooms[other])
        return out

    # === Edits =============================================================

    @property
    def busy(self) -> bool:
        """True while this layout, or the layout it was viewed from, is locked."""
        return self.locked or (self.parent is not None and self.parent.busy)

    def set_locked(self, locked: bool):
        self.locked = locked
        if self.parent is not None:
            self.parent.set_locked(locked)

    def _check_unlocked(self):
        if self.busy:
            raise LayoutBusyError("layout is being optimized; cancel the run first")

    def set_boundary(self, points: Optional[Iterable[Point]]):
        self._check_unlocked()
        self.boundary = [(float(p[0]), float(p[1])) for p in points] if points else None
        self.grid.bounds = Bounds.from_points(self.boundary)

    def add_room(self, room: Room) -> Room:
        self._check_unlocked()
        if room.id in self.rooms:
            raise ValueError(f"duplicate room id: {room.id!r}")
        self.rooms[room.id] = room
        return room

    def add_link(self, a: str, b: str, link_type: int = 1) -> Optional[Link]:
        """Add a required adjacency. Returns None for self links and duplicates."""
        self._check_unlocked()
        for rid in (a, b):
            if rid not in self.rooms:
                raise UnknownRoomError(rid)
        if a == b:
            return None
        link = Link.between(a, b, link_type)
        if any(l.key == link.key for l in self.links):
            return None
        self.links.append(link)
        return link

    def delete_room(self, room_id: str) -> Room:
        """Remove a room, every link touching it, and its pin."""
        self._check_unlocked()
        room = self.get(room_id)
        del self.rooms[room_id]
        self.links = [l for l in self.links if not l.touches(room_id)]
        self.pinned.discard(room_id)
        self.original_sizes.pop(room_id, None)
        return room

    def pin(self, room_ids: Iterable[str]):
        self._check_unlocked()
        for rid in room_ids:
            self.get(rid)
            self.pinned.add(rid)

    def toggle_pin(self, room_id: str) -> bool:
        """Flip the pinned state of a room; returns the new state."""
        self._check_unlocked()
        self.get(room_id)
        if room_id in self.pinned:
            self.pinned.discard(room_id)
            return False
        self.pinned.add(room_id)
        return True

    def set_dimension(
        self,
        room_id: str,
        width_m: Optional[float] = None,
        height_m: Optional[float] = None,
    ) -> Room:
        """Set one side in metres and derive the other from the target area."""
        self._check_unlocked()
        room = self.get(room_id)
        scale = self.grid.scale
        if width_m is not None and width_m > 0:
            room.width = width_m * scale
            room.height = room.area / width_m * scale
        elif height_m is not None and height_m > 0:
            room.height = height_m * scale
            room.width = room.area / height_m * scale
        else:
            raise ValueError("a positive width or height is required")
        return room

    # === Views =============================================================

    def for_floor(self, floor: Optional[str]) -> "Layout":
        """View of one floor sharing the same Room records.

        ``None`` or ``"all"`` keeps every room.  Locking the view for a run
        locks this layout as well.
        """
        if floor is None or floor == "all":
            rooms = dict(self.rooms)
        else:
            rooms = {rid: r for rid, r in self.rooms.items() if r.floor == floor}
        links = [l for l in self.links
                 if l.source_id in rooms and l.target_id in rooms]
        view = Layout(
            rooms=rooms,
            links=links,
            pinned={rid for rid in self.pinned if rid in rooms},
            grid=self.grid,
            original_sizes=self.original_sizes,
            parent=self,
        )
        view.boundary = self.boundary
        return view
