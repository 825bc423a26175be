"""Serialize a layout and its optimization result to JSON."""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from config import OUTPUT_DIR
from planner.optimizer import OptimizationRun
from planner.satisfaction import layout_satisfaction
from planner.session import layout_stats
from tools.units import room_size_m

log = logging.getLogger(__name__)


def layout_to_dict(layout, run: Optional[OptimizationRun] = None) -> dict:
    """Plain-dict snapshot of rooms, links, satisfaction and run outcome."""
    ratios, score = layout_satisfaction(layout)
    scale = layout.grid.scale
    rooms = []
    for room in layout.rooms.values():
        width_m, height_m = room_size_m(room, scale)
        rooms.append({
            "id": room.id,
            "name": room.name,
            "floor": room.floor,
            "zone": room.zone,
            "area": room.area,
            "x": round(room.x, 3),
            "y": round(room.y, 3),
            "width": round(room.width, 3),
            "height": round(room.height, 3),
            "width_m": round(width_m, 3),
            "height_m": round(height_m, 3),
            "pinned": room.id in layout.pinned,
            "grid_adjusted": room.grid_adjusted,
            "meets_area_requirement": room.meets_area_requirement,
            "satisfaction": ratios.get(room.id, 1.0),
        })

    data = {
        "rooms": rooms,
        "links": [
            {"source": l.source_id, "target": l.target_id, "type": l.type}
            for l in layout.active_links()
        ],
        "boundary": [list(p) for p in layout.boundary] if layout.boundary else None,
        "satisfaction": score,
        "stats": layout_stats(layout),
    }
    if run is not None:
        data["run"] = {
            "status": run.status.value,
            "mode": run.config.mode.value,
            "iterations": run.iteration,
            "final_score": run.final_score,
            "best_score": run.best_score,
            "history": [round(p.aggregate, 4) for p in run.history],
        }
    return data


def write_layout_json(layout, path: Optional[str] = None,
                      run: Optional[OptimizationRun] = None) -> str:
    """Write ``layout_to_dict`` output; defaults to OUTPUT_DIR/layout.json."""
    if path is None:
        os.makedirs(OUTPUT_DIR, exist_ok=True)
        path = os.path.join(OUTPUT_DIR, "layout.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(layout_to_dict(layout, run), f, indent=2, ensure_ascii=False)
    log.info("Layout written to %s", path)
    return path
