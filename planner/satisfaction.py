"""Adjacency satisfaction scoring.

A room's ratio is the share of its required links whose other room it
currently touches.  The aggregate is the plain mean over rooms, not over
links, so a room with many unmet links weighs no more than one with a
single unmet link.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from config import EDGE_TOLERANCE
from planner.geometry import are_adjacent
from planner.model import Link, Room


def _room_index(rooms) -> dict[str, Room]:
    if isinstance(rooms, Mapping):
        return dict(rooms)
    return {r.id: r for r in rooms}


def required_neighbours(room: Room, rooms, links: Iterable[Link]) -> list[Room]:
    """Rooms linked to *room* that exist in *rooms*."""
    index = _room_index(rooms)
    out = []
    for link in links:
        other = link.other(room.id)
        if other is not None and other in index:
            out.append(index[other])
    return out


def unmet_neighbours(
    room: Room,
    rooms,
    links: Iterable[Link],
    edge_tolerance: float = EDGE_TOLERANCE,
) -> list[Room]:
    """Required neighbours *room* does not touch yet."""
    return [other for other in required_neighbours(room, rooms, links)
            if not are_adjacent(room, other, edge_tolerance)]


def satisfaction(
    rooms,
    links: Iterable[Link],
    edge_tolerance: float = EDGE_TOLERANCE,
) -> dict[str, float]:
    """Per-room satisfaction ratio in [0, 1].

    Links pointing at rooms outside *rooms* (deleted, filtered to another
    floor) are ignored.  Rooms without required links score 1.
    """
    index = _room_index(rooms)
    links = list(links)
    required: dict[str, list[str]] = {rid: [] for rid in index}
    for link in links:
        if link.source_id in index and link.target_id in index:
            required[link.source_id].append(link.target_id)
            required[link.target_id].append(link.source_id)

    ratios: dict[str, float] = {}
    for rid, room in index.items():
        others = required[rid]
        if not others:
            ratios[rid] = 1.0
            continue
        met = sum(1 for oid in others
                  if are_adjacent(room, index[oid], edge_tolerance))
        ratios[rid] = met / len(others)
    return ratios


def aggregate_satisfaction(ratios: Mapping[str, float]) -> float:
    """Mean ratio over rooms; an empty layout counts as satisfied."""
    if not ratios:
        return 1.0
    return sum(ratios.values()) / len(ratios)


def layout_satisfaction(layout, edge_tolerance: float = EDGE_TOLERANCE) -> tuple[dict[str, float], float]:
    """Ratios and aggregate for a whole ``Layout``."""
    ratios = satisfaction(layout.rooms, layout.links, edge_tolerance)
    return ratios, aggregate_satisfaction(ratios)
