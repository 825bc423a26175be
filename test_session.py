"""Tests for layout edits, session helpers, loaders, export and the CLI."""
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import json
import math
import random
import tempfile

import config
from planner.errors import BoundaryFormatError, InputFormatError, UnknownRoomError
from planner.geometry import are_adjacent, room_inside
from planner.model import Grid, Layout, Link, Room
from planner.optimizer import LayoutOptimizer, OptimizerConfig
from planner.session import (
    adjust_room_sizes,
    layout_stats,
    move_room,
    restore_room_sizes,
    scatter,
    settle,
)
from tools.export import layout_to_dict, write_layout_json
from tools.loaders import (
    build_layout,
    load_boundary_geojson,
    load_connectivity_csv,
    load_rooms_csv,
)
from tools.units import m_to_units, room_size_m, units_to_m

ROOMS_CSV = """Code,Name,Floor,Zone,Area
R1,Living,1F,Public,30
R2,Kitchen,1F,Service,
R3,Bedroom,2F,Private,12
"""

MATRIX_CSV = """,R1,R2,R3,RX
R1,0,1,0,1
R2,1,0,2,0
R3,0,2,0,0
"""

BOUNDARY = {
    "type": "FeatureCollection",
    "features": [{
        "type": "Feature",
        "properties": {},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[0, 0], [100, 0], [100, 80], [0, 80], [0, 0]]],
        },
    }],
}


def _write(directory, name, text):
    path = os.path.join(directory, name)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def _layout_of(*rooms, links=(), boundary=None):
    layout = Layout(boundary=boundary)
    for room in rooms:
        layout.add_room(room)
    for a, b in links:
        layout.add_link(a, b)
    return layout


# ---------------------------------------------------------------------------
# Layout edits
# ---------------------------------------------------------------------------

def test_add_link_normalises_and_dedupes():
    layout = _layout_of(Room.from_area("B", 10), Room.from_area("A", 10))
    link = layout.add_link("B", "A", 2)
    assert link == Link("A", "B", 2)
    assert layout.add_link("A", "B") is None
    assert layout.add_link("A", "A") is None
    assert len(layout.links) == 1
    assert layout.links == [Link("A", "B", 2)]
    print("  PASSED: add link normalises and dedupes")


def test_unknown_room_errors():
    layout = _layout_of(Room.from_area("A", 10))
    for action in (lambda: layout.add_link("A", "Z"),
                   lambda: layout.get("Z"),
                   lambda: layout.delete_room("Z"),
                   lambda: layout.pin(["Z"])):
        try:
            action()
        except UnknownRoomError as e:
            assert isinstance(e, KeyError)
            assert e.room_id == "Z"
            continue
        raise AssertionError("expected UnknownRoomError")
    print("  PASSED: unknown room errors")


def test_delete_room_removes_links_and_pin():
    layout = _layout_of(Room.from_area("A", 10), Room.from_area("B", 10),
                        Room.from_area("C", 10), links=[("A", "B"), ("B", "C")])
    layout.pin(["B"])
    layout.delete_room("B")
    assert "B" not in layout
    assert layout.links == []
    assert layout.pinned == set()
    print("  PASSED: delete room removes links and pin")


def test_toggle_pin():
    layout = _layout_of(Room.from_area("A", 10))
    assert layout.toggle_pin("A") is True
    assert "A" in layout.pinned
    assert layout.toggle_pin("A") is False
    assert "A" not in layout.pinned
    print("  PASSED: toggle pin")


def test_set_dimension_preserves_area():
    layout = _layout_of(Room.from_area("A", 20, scale=10))
    layout.grid = Grid(scale=10)
    room = layout.set_dimension("A", width_m=4)
    assert math.isclose(room.width, 40)
    assert math.isclose(room.height, 50)
    assert math.isclose(room.width * room.height / 100, 20)

    room = layout.set_dimension("A", height_m=2.5)
    assert math.isclose(room.height, 25)
    assert math.isclose(room.width, 80)

    try:
        layout.set_dimension("A")
    except ValueError:
        pass
    else:
        raise AssertionError("set_dimension without a size should fail")
    print("  PASSED: set dimension preserves area")


def test_for_floor_shares_rooms():
    layout = _layout_of(
        Room.from_area("A", 10, floor="1F"), Room.from_area("B", 10, floor="1F"),
        Room.from_area("C", 10, floor="2F"), links=[("A", "B"), ("B", "C")],
    )
    view = layout.for_floor("1F")
    assert sorted(view.rooms) == ["A", "B"]
    assert [l.key for l in view.links] == [("A", "B")]
    view.rooms["A"].x = 123
    assert layout.get("A").x == 123
    assert len(layout.for_floor("all")) == 3
    print("  PASSED: floor view shares rooms")


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

def test_settle_aligns_linked_edges():
    a = Room.from_area("A", 25, x=0, y=0, scale=10)
    b = Room.from_area("B", 25, x=52, y=10, scale=10)
    layout = _layout_of(a, b, links=[("A", "B")])
    settle(layout)
    assert math.isclose(b.x - a.x, 50)
    assert are_adjacent(a, b)
    print("  PASSED: settle aligns linked edges")


def test_settle_aligns_against_pinned():
    a = Room.from_area("A", 25, x=0, y=0, scale=10)
    b = Room.from_area("B", 25, x=52, y=10, scale=10)
    layout = _layout_of(a, b, links=[("A", "B")])
    layout.pin(["A"])
    settle(layout)
    assert (a.x, a.y) == (0, 0)
    assert b.x == 50
    print("  PASSED: settle aligns against pinned room")


def test_settle_separates_overlaps():
    a = Room.from_area("A", 25, x=0, y=0, scale=10)
    b = Room.from_area("B", 25, x=10, y=0, scale=10)
    layout = _layout_of(a, b)
    settle(layout)
    assert abs(b.x - a.x) >= 50 or abs(b.y - a.y) >= 50
    print("  PASSED: settle separates overlaps")


def test_move_room_snaps_to_grid():
    layout = _layout_of(Room("A", "A", 4.0, 20, 20, x=50, y=50),
                        boundary=[(0, 0), (300, 0), (300, 300), (0, 300)])
    layout.grid.scale = 10
    room = move_room(layout, "A", 103, 57)
    assert (room.x, room.y) == (100, 60)
    print("  PASSED: move room snaps to grid")


def test_adjust_and_restore_room_sizes():
    a = Room.from_area("A", 24, scale=10)
    b = Room.from_area("B", 10, scale=10)
    original = {r.id: (r.width, r.height) for r in (a, b)}
    layout = _layout_of(a, b)
    layout.grid = Grid(spacing=1.0, scale=10)

    warnings = adjust_room_sizes(layout)
    assert (a.width, a.height) == (50, 50)
    assert a.grid_adjusted and a.meets_area_requirement
    assert not b.meets_area_requirement
    assert [w.room_id for w in warnings] == ["B"]
    assert math.isclose(warnings[0].new_area, 9.0)
    assert "B" in str(warnings[0])

    # a second adjustment keeps the first originals
    adjust_room_sizes(layout, spacing=2.0)
    assert layout.original_sizes == original

    assert restore_room_sizes(layout) == 2
    assert {r.id: (r.width, r.height) for r in (a, b)} == original
    assert not a.grid_adjusted and b.meets_area_requirement
    assert layout.original_sizes == {}
    print("  PASSED: adjust / restore room sizes")


def test_scatter_around_boundary_centre():
    layout = _layout_of(Room.from_area("A", 10, x=0, y=0), Room.from_area("B", 10, x=0, y=0),
                        boundary=[(0, 0), (400, 0), (400, 200), (0, 200)])
    layout.pin(["A"])
    assert scatter(layout, random.Random(1)) == 1
    assert (layout.get("A").x, layout.get("A").y) == (0, 0)
    b = layout.get("B")
    assert abs(b.x - 200) <= 50 and abs(b.y - 100) <= 50
    assert scatter(Layout()) == 0
    print("  PASSED: scatter around boundary centre")


def test_layout_stats():
    a = Room.from_area("A", 25, x=0, y=0, scale=10)
    b = Room.from_area("B", 25, x=50, y=0, scale=10)
    c = Room.from_area("C", 10, x=500, y=0, scale=10)
    layout = _layout_of(a, b, c, links=[("A", "B"), ("A", "C")])
    stats = layout_stats(layout)
    assert stats["rooms"] == 3
    assert stats["links"] == 2
    assert stats["links_met"] == 1
    assert stats["total_area"] == 60
    assert stats["fully_satisfied_rooms"] == 1
    print("  PASSED: layout stats")


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

def test_unit_conversions():
    assert m_to_units(2.5, scale=10) == 25
    assert units_to_m(25, scale=10) == 2.5
    assert room_size_m(Room("A", "A", 6, 20, 30), scale=10) == (2, 3)
    print("  PASSED: unit conversions")


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

def test_load_rooms_csv():
    with tempfile.TemporaryDirectory() as d:
        path = _write(d, "rooms.csv", ROOMS_CSV)
        rooms = load_rooms_csv(path, scale=10, rng=random.Random(0))
    assert [r.id for r in rooms] == ["R1", "R2", "R3"]
    assert rooms[0].name == "Living"
    assert rooms[0].floor == "1F" and rooms[2].zone == "Private"
    assert rooms[1].area == 25.0
    assert math.isclose(rooms[1].width, 50)
    for room in rooms:
        assert 500 <= room.x <= 700 and 300 <= room.y <= 500
    print("  PASSED: load rooms csv")


def test_load_rooms_csv_requires_code():
    with tempfile.TemporaryDirectory() as d:
        path = _write(d, "rooms.csv", "Name,Area\nLiving,30\n")
        try:
            load_rooms_csv(path)
        except InputFormatError:
            pass
        else:
            raise AssertionError("room file without Code column accepted")
    print("  PASSED: room csv requires Code column")


def test_load_connectivity_csv():
    with tempfile.TemporaryDirectory() as d:
        path = _write(d, "matrix.csv", MATRIX_CSV)
        links = load_connectivity_csv(path, known_ids=["R1", "R2", "R3"])
        everything = load_connectivity_csv(path)
    assert [(l.key, l.type) for l in links] == [(("R1", "R2"), 1), (("R2", "R3"), 2)]
    assert len(everything) == 3
    print("  PASSED: load connectivity csv")


def test_load_boundary_geojson_variants():
    ring = BOUNDARY["features"][0]["geometry"]["coordinates"][0]
    with tempfile.TemporaryDirectory() as d:
        collection = _write(d, "fc.geojson", json.dumps(BOUNDARY))
        feature = _write(d, "f.geojson", json.dumps(BOUNDARY["features"][0]))
        geometry = _write(d, "g.geojson", json.dumps(BOUNDARY["features"][0]["geometry"]))
        for path in (collection, feature, geometry):
            assert load_boundary_geojson(path, scale=1) == [tuple(map(float, p)) for p in ring]
        scaled = load_boundary_geojson(collection, scale=10)
        metres = load_boundary_geojson(collection)
    assert scaled[2] == (1000.0, 800.0)
    # coordinates are metres unless told otherwise
    assert metres[2] == (100.0 * config.SCALE_FACTOR, 80.0 * config.SCALE_FACTOR)
    print("  PASSED: load boundary geojson variants")


def test_load_boundary_geojson_rejects_bad_input():
    with tempfile.TemporaryDirectory() as d:
        bad = [
            _write(d, "a.geojson", "{not json"),
            _write(d, "b.geojson", json.dumps({"type": "FeatureCollection", "features": []})),
            _write(d, "c.geojson", json.dumps({"type": "Polygon", "coordinates": [[[0, 0], [1, 1]]]})),
        ]
        for path in bad:
            try:
                load_boundary_geojson(path)
            except BoundaryFormatError:
                continue
            raise AssertionError(f"{path} accepted")
    print("  PASSED: bad boundary files rejected")


def test_build_layout():
    with tempfile.TemporaryDirectory() as d:
        layout = build_layout(
            _write(d, "rooms.csv", ROOMS_CSV),
            _write(d, "matrix.csv", MATRIX_CSV),
            boundary_geojson=_write(d, "site.geojson", json.dumps(BOUNDARY)),
            boundary_scale=10,
            rng=random.Random(0),
        )
    assert len(layout) == 3
    assert len(layout.links) == 2
    assert layout.grid.bounds is not None
    assert layout.grid.bounds.max_x == 1000
    print("  PASSED: build layout")


def test_build_layout_boundary_in_metres():
    """A 120m x 80m site holds the scattered rooms without any scale option."""
    site = {"type": "Polygon",
            "coordinates": [[[0, 0], [120, 0], [120, 80], [0, 80], [0, 0]]]}
    with tempfile.TemporaryDirectory() as d:
        layout = build_layout(
            _write(d, "rooms.csv", ROOMS_CSV),
            _write(d, "matrix.csv", MATRIX_CSV),
            boundary_geojson=_write(d, "site.geojson", json.dumps(site)),
            scale=10,
            rng=random.Random(0),
        )
    assert layout.grid.bounds.max_x == 1200
    assert layout.grid.bounds.max_y == 800
    for room in layout.room_list():
        assert room_inside(room, layout.boundary), room.id

    optimizer = LayoutOptimizer(OptimizerConfig(step_delay=0, seed=0, max_iterations=30))
    run = optimizer.start(layout)
    while not optimizer.step(run).done:
        for room in layout.room_list():
            assert room_inside(room, layout.boundary), f"{room.id} at iteration {run.iteration}"
    for room in layout.room_list():
        assert room_inside(room, layout.boundary), room.id
    print("  PASSED: build layout with boundary in metres")


# ---------------------------------------------------------------------------
# Export and CLI
# ---------------------------------------------------------------------------

def test_layout_to_dict():
    a = Room.from_area("A", 25, x=0, y=0, scale=10)
    b = Room.from_area("B", 25, x=300, y=0, scale=10)
    layout = _layout_of(a, b, links=[("A", "B")])
    run = LayoutOptimizer(OptimizerConfig(step_delay=0, seed=1)).run(layout)
    data = layout_to_dict(layout, run)
    assert [r["id"] for r in data["rooms"]] == ["A", "B"]
    assert data["links"] == [{"source": "A", "target": "B", "type": 1}]
    assert data["run"]["status"] == run.status.value
    assert data["run"]["iterations"] == run.iteration
    assert data["boundary"] is None
    with tempfile.TemporaryDirectory() as d:
        path = write_layout_json(layout, os.path.join(d, "out.json"), run)
        with open(path, encoding="utf-8") as f:
            assert json.load(f)["satisfaction"] == data["satisfaction"]
    print("  PASSED: layout to dict")


def test_cli_writes_output():
    import main

    with tempfile.TemporaryDirectory() as d:
        out = os.path.join(d, "layout.json")
        code = main.main([
            "--rooms", _write(d, "rooms.csv", ROOMS_CSV),
            "--matrix", _write(d, "matrix.csv", MATRIX_CSV),
            "--delay", "0",
            "--seed", "1",
            "--max-iterations", "20",
            "--output", out,
        ])
        assert code == 0
        with open(out, encoding="utf-8") as f:
            data = json.load(f)
    assert len(data["rooms"]) == 3
    assert data["run"]["mode"] == "smart"
    print("  PASSED: CLI writes output")


def test_cli_boundary_in_metres():
    import main

    site = {"type": "Polygon", "coordinates": [[[0, 0], [120, 0], [120, 80], [0, 80]]]}
    with tempfile.TemporaryDirectory() as d:
        out = os.path.join(d, "layout.json")
        code = main.main([
            "--rooms", _write(d, "rooms.csv", ROOMS_CSV),
            "--matrix", _write(d, "matrix.csv", MATRIX_CSV),
            "--boundary", _write(d, "site.geojson", json.dumps(site)),
            "--delay", "0",
            "--seed", "2",
            "--max-iterations", "10",
            "--output", out,
        ])
        assert code == 0
        with open(out, encoding="utf-8") as f:
            data = json.load(f)
    assert data["boundary"][2] == [120 * config.SCALE_FACTOR, 80 * config.SCALE_FACTOR]
    for room in data["rooms"]:
        assert 0 <= room["x"] - room["width"] / 2
        assert room["x"] + room["width"] / 2 <= 120 * config.SCALE_FACTOR
    print("  PASSED: CLI reads boundary in metres")


def test_cli_missing_file_fails():
    import main

    code = main.main(["--rooms", "/nonexistent/rooms.csv", "--matrix", "/nonexistent/m.csv",
                      "--delay", "0"])
    assert code == 1
    print("  PASSED: CLI reports missing input")


if __name__ == "__main__":
    print("Running session / loader / export tests...\n")
    tests = [
        test_add_link_normalises_and_dedupes,
        test_unknown_room_errors,
        test_delete_room_removes_links_and_pin,
        test_toggle_pin,
        test_set_dimension_preserves_area,
        test_for_floor_shares_rooms,
        test_settle_aligns_linked_edges,
        test_settle_aligns_against_pinned,
        test_settle_separates_overlaps,
        test_move_room_snaps_to_grid,
        test_adjust_and_restore_room_sizes,
        test_scatter_around_boundary_centre,
        test_layout_stats,
        test_unit_conversions,
        test_load_rooms_csv,
        test_load_rooms_csv_requires_code,
        test_load_connectivity_csv,
        test_load_boundary_geojson_variants,
        test_load_boundary_geojson_rejects_bad_input,
        test_build_layout,
        test_build_layout_boundary_in_metres,
        test_layout_to_dict,
        test_cli_writes_output,
        test_cli_boundary_in_metres,
        test_cli_missing_file_fails,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"  FAILED: {test.__name__}: {e}")
            failed += 1

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed, {len(tests)} total")
    if failed == 0:
        print("ALL TESTS PASSED")
    else:
        print(f"{failed} TEST(S) FAILED")
