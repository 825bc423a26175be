"""Configuration defaults for the room layout planner."""

import os

# Layout space: rooms live in "units", input areas and grid spacing in metres
SCALE_FACTOR = float(os.environ.get("PLANNER_SCALE_FACTOR", "10"))
MIN_SIZE = float(os.environ.get("PLANNER_MIN_SIZE", "20"))  # units
DEFAULT_ROOM_AREA = 25.0  # m², used when a room record has no area

# Adjacency / grid
EDGE_TOLERANCE = float(os.environ.get("PLANNER_EDGE_TOLERANCE", "3"))  # units
MIN_GRID_SPACING = 0.5  # metres
DEFAULT_GRID_SPACING = float(os.environ.get("PLANNER_GRID_SPACING", "1.0"))
AREA_TOLERANCE = float(os.environ.get("PLANNER_AREA_TOLERANCE", "0.05"))

# Optimizer
DEFAULT_MODE = os.environ.get("PLANNER_MODE", "smart")
SMART_MAX_ITERATIONS = 150
DEFAULT_MAX_ITERATIONS = 100
PHASE_GLOBAL_END = 30
PHASE_OVERLAP_END = 60
DEFAULT_STEP_DELAY = float(os.environ.get("PLANNER_STEP_DELAY", "0.05"))  # seconds
DEFAULT_SEED = os.environ.get("PLANNER_SEED") or None

# Initial scatter of freshly loaded rooms (units)
SCATTER_ORIGIN = (600.0, 400.0)
SCATTER_SPREAD = 200.0

# Output
OUTPUT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "output")
