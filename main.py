"""Room Adjacency Planner

Arrange rooms inside a site boundary so that every required adjacency from a
connectivity matrix becomes a shared wall.

Usage:
    python main.py --rooms rooms.csv --matrix matrix.csv
    python main.py --rooms rooms.csv --matrix matrix.csv --boundary site.geojson \
        --mode smart --grid-spacing 1.0 --snap-sizes --output layout.json
"""

import argparse
import logging
import os
import random
import signal
import sys

# Load settings from .env before config is imported
from dotenv import load_dotenv

_env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(_env_path)

import config  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("planner")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Room Adjacency Planner - adjacency-driven room layout optimizer"
    )
    parser.add_argument("--rooms", required=True, help="Room list CSV (Code, Name, Floor, Zone, Area).")
    parser.add_argument("--matrix", required=True, help="Connectivity matrix CSV.")
    parser.add_argument("--boundary", default=None, help="Site boundary GeoJSON (Polygon).")
    parser.add_argument(
        "--boundary-scale", type=float, default=config.SCALE_FACTOR,
        help="Layout units per boundary coordinate (boundary in metres by default).",
    )
    parser.add_argument(
        "--mode", choices=["conservative", "aggressive", "smart"], default=config.DEFAULT_MODE,
        help="Optimization mode.",
    )
    parser.add_argument("--max-iterations", type=int, default=None,
                        help="Iteration cap (default: 150 for smart, 100 otherwise).")
    parser.add_argument("--grid-spacing", type=float, default=config.DEFAULT_GRID_SPACING,
                        help="Grid spacing in metres (minimum 0.5).")
    parser.add_argument("--snap-sizes", action="store_true",
                        help="Fit room sizes to whole grid cells before optimizing.")
    parser.add_argument("--no-snap-positions", action="store_true",
                        help="Do not snap room positions to the grid.")
    parser.add_argument("--delay", type=float, default=config.DEFAULT_STEP_DELAY,
                        help="Seconds to wait between iterations.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed.")
    parser.add_argument("--floor", default=None, help="Only optimize rooms on this floor.")
    parser.add_argument("--pin", nargs="*", default=[], metavar="ID",
                        help="Room ids that must not move.")
    parser.add_argument("--output", default=None,
                        help="Output JSON path (default: output/layout.json).")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    from planner.errors import PlannerError

    try:
        return _run(args)
    except (PlannerError, OSError) as e:
        log.error("%s", e)
        return 1
    except ValueError as e:
        log.error("Invalid setting: %s", e)
        return 2


def _run(args) -> int:
    from planner.optimizer import LayoutOptimizer, OptimizerConfig, RunStatus
    from planner.session import adjust_room_sizes
    from tools.export import write_layout_json
    from tools.loaders import build_layout

    cfg = OptimizerConfig.from_env(
        mode=args.mode,
        max_iterations=args.max_iterations,
        step_delay=args.delay,
        seed=args.seed,
    )
    layout = build_layout(
        args.rooms,
        args.matrix,
        boundary_geojson=args.boundary,
        boundary_scale=args.boundary_scale,
        grid_spacing=args.grid_spacing,
        snap_positions=not args.no_snap_positions,
        rng=random.Random(cfg.seed),
    )
    if args.pin:
        layout.pin(args.pin)
    if args.snap_sizes:
        for warning in adjust_room_sizes(layout):
            log.warning("Area warning - %s", warning)

    target = layout.for_floor(args.floor)
    if not len(target):
        log.error("No rooms on floor %r", args.floor)
        return 1

    optimizer = LayoutOptimizer(cfg)
    run = optimizer.start(target)

    def on_progress(progress):
        if progress.iteration % 10 == 0:
            log.info("Iteration %d [phase %d]: %.1f%% satisfied",
                     progress.iteration, int(progress.phase), progress.percent)

    def on_interrupt(signum, frame):
        log.warning("Interrupted, cancelling after the current iteration")
        run.cancel()

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        optimizer.run(target, on_progress=on_progress, run=run)
    finally:
        signal.signal(signal.SIGINT, previous)

    path = write_layout_json(target, args.output, run)
    print(f"{run.status.value}: {run.final_score * 100:.1f}% satisfied "
          f"after {run.iteration} iteration(s) -> {path}")
    return 0 if run.status != RunStatus.CANCELLED else 130


if __name__ == "__main__":
    sys.exit(main())
