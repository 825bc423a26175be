"""Loaders for room lists, connectivity matrices and boundary GeoJSON.

Room CSV columns: Code, Name, Floor, Zone, Area (m²).
Connectivity CSV: first column (empty header) holds the row room id, every
other column a room id; a positive cell value is a required adjacency of
that type.  The matrix may be asymmetric or fully symmetric; each unordered
pair becomes at most one link.
"""

from __future__ import annotations

import csv
import json
import logging
import random
from typing import Iterable, Optional

from config import (
    DEFAULT_GRID_SPACING,
    DEFAULT_ROOM_AREA,
    MIN_SIZE,
    SCALE_FACTOR,
    SCATTER_ORIGIN,
    SCATTER_SPREAD,
)
from planner.errors import BoundaryFormatError, InputFormatError
from planner.geometry import is_usable_polygon
from planner.grid import snap_room
from planner.model import Grid, Layout, Link, Point, Room
from tools.units import m_to_units

log = logging.getLogger(__name__)

ROOM_COLUMNS = ("Code", "Name", "Floor", "Zone", "Area")


def _read_rows(path: str) -> tuple[list[str], list[dict]]:
    # utf-8-sig: spreadsheet exports often start with a BOM
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        rows = [row for row in reader
                if any(isinstance(v, str) and v.strip() for v in row.values())]
        return list(reader.fieldnames or []), rows


def _parse_number(value) -> Optional[float]:
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _cell_text(value) -> str:
    text = str(value).strip() if value is not None else ""
    # "3.0" from a numeric id column
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return text


def load_rooms_csv(
    path: str,
    scale: float = SCALE_FACTOR,
    min_size: float = MIN_SIZE,
    origin: Point = SCATTER_ORIGIN,
    spread: float = SCATTER_SPREAD,
    rng: Optional[random.Random] = None,
) -> list[Room]:
    """Read rooms and scatter them in a *spread*-wide square around *origin*."""
    fieldnames, rows = _read_rows(path)
    if "Code" not in fieldnames:
        raise InputFormatError(f"{path}: room file needs a 'Code' column, got {fieldnames}")

    rng = rng or random.Random()
    rooms: list[Room] = []
    seen: set[str] = set()
    for line, row in enumerate(rows, start=2):
        room_id = _cell_text(row.get("Code"))
        if not room_id:
            log.debug("%s:%d: row without a room code skipped", path, line)
            continue
        if room_id in seen:
            raise InputFormatError(f"{path}:{line}: duplicate room code {room_id!r}")
        seen.add(room_id)

        area = _parse_number(row.get("Area"))
        if not area:
            area = DEFAULT_ROOM_AREA
        rooms.append(Room.from_area(
            room_id,
            area,
            name=_cell_text(row.get("Name")) or room_id,
            x=origin[0] + (rng.random() - 0.5) * spread,
            y=origin[1] + (rng.random() - 0.5) * spread,
            floor=_cell_text(row.get("Floor")),
            zone=_cell_text(row.get("Zone")),
            scale=scale,
            min_size=min_size,
        ))
    log.info("Loaded %d rooms from %s", len(rooms), path)
    return rooms


def load_connectivity_csv(path: str, known_ids: Optional[Iterable[str]] = None) -> list[Link]:
    """Read the adjacency matrix into normalised, de-duplicated links."""
    fieldnames, rows = _read_rows(path)
    if not fieldnames:
        raise InputFormatError(f"{path}: empty connectivity matrix")
    id_column = fieldnames[0]
    known = set(known_ids) if known_ids is not None else None

    links: list[Link] = []
    keys: set[tuple[str, str]] = set()
    dropped = 0
    for row in rows:
        source = _cell_text(row.get(id_column))
        if not source:
            continue
        for column in fieldnames[1:]:
            target = _cell_text(column)
            value = _parse_number(row.get(column))
            if not target or value is None or value <= 0 or target == source:
                continue
            if known is not None and (source not in known or target not in known):
                dropped += 1
                continue
            link = Link.between(source, target, int(value))
            if link.key in keys:
                continue
            keys.add(link.key)
            links.append(link)

    if dropped:
        log.debug("%s: %d link(s) to unknown rooms dropped", path, dropped)
    log.info("Loaded %d links from %s", len(links), path)
    return links


def _first_ring(geojson) -> Optional[list]:
    try:
        if isinstance(geojson, dict):
            features = geojson.get("features")
            if features:
                return features[0]["geometry"]["coordinates"][0]
            geometry = geojson.get("geometry")
            if geometry and geometry.get("coordinates"):
                return geometry["coordinates"][0]
            if geojson.get("coordinates"):
                return geojson["coordinates"][0]
    except (KeyError, IndexError, TypeError):
        return None
    return None


def load_boundary_geojson(path: str, scale: float = SCALE_FACTOR) -> list[Point]:
    """First polygon ring of a FeatureCollection, Feature or bare geometry.

    Coordinates are metres; they are multiplied by *scale* to get layout
    units.  Pass ``scale=1`` for a boundary already drawn in units.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            geojson = json.load(f)
        except json.JSONDecodeError as e:
            raise BoundaryFormatError(f"{path}: invalid JSON ({e})") from e

    ring = _first_ring(geojson)
    if not isinstance(ring, list):
        raise BoundaryFormatError(f"{path}: no Polygon coordinates found")
    try:
        points = [(m_to_units(float(p[0]), scale), m_to_units(float(p[1]), scale))
                  for p in ring]
    except (TypeError, ValueError, IndexError) as e:
        raise BoundaryFormatError(f"{path}: malformed polygon ring") from e
    if not is_usable_polygon(points):
        raise BoundaryFormatError(f"{path}: polygon ring encloses no area")
    log.info("Loaded boundary with %d points from %s", len(points), path)
    return points


def build_layout(
    rooms_csv: str,
    matrix_csv: str,
    boundary_geojson: Optional[str] = None,
    boundary_scale: Optional[float] = None,
    grid_spacing: float = DEFAULT_GRID_SPACING,
    snap_positions: bool = True,
    scale: float = SCALE_FACTOR,
    rng: Optional[random.Random] = None,
) -> Layout:
    """Load all inputs into a ready-to-optimize ``Layout``.

    The boundary is read in metres and scaled like the rooms unless
    *boundary_scale* says otherwise.
    """
    if boundary_scale is None:
        boundary_scale = scale
    rooms = load_rooms_csv(rooms_csv, scale=scale, rng=rng)
    links = load_connectivity_csv(matrix_csv, known_ids=[r.id for r in rooms])
    boundary = load_boundary_geojson(boundary_geojson, boundary_scale) if boundary_geojson else None

    layout = Layout(
        rooms={r.id: r for r in rooms},
        links=links,
        boundary=boundary,
        grid=Grid(spacing=grid_spacing, scale=scale, snap_positions=snap_positions),
    )
    for room in layout.rooms.values():
        snap_room(room, layout.grid)
    return layout
