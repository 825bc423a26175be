"""Adjacency layout optimizer.

Moves rooms until every room touches the rooms it is linked to, while the
hard-constraint passes keep rooms apart and inside the boundary:
  1. Stagnation escape (temperature-scaled jumps, isolated rooms to empty cells)
  2. Phase work (smart mode): global pull -> overlap resolution -> fine tuning
  3. Assertive pulls for partially satisfied rooms
  4. Docking onto free edges and swaps of blocked rooms
  5. Bounded steps towards the nearest unmet neighbour, with optional rollback
  6. Micro-alignment of almost-flush walls
  7. Hard constraints (overlap separation, boundary rollback), every mode;
     repeated until clean when the run converges or runs out of iterations

The optimizer is step-wise: ``step()`` runs exactly one iteration and
returns a ``StepResult``; ``run()`` drives steps with a delay in between and
honours cancellation between iterations.  All run state lives in an
``OptimizationRun`` owned by the caller.
"""

from __future__ import annotations

import logging
import math
import random
import threading
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Optional

import config
from planner.constraints import enforce_boundary, resolve_overlaps
from planner.errors import LayoutBusyError
from planner.geometry import (
    are_adjacent,
    axis_sign,
    edge_gaps,
    rects_overlap,
    room_inside,
)
from planner.grid import snap_position, snap_room
from planner.model import Layout, Room
from planner.placement import (
    find_best_dock,
    find_blocked_rooms,
    find_empty_cells,
    touching_count,
    try_swap,
)
from planner.satisfaction import aggregate_satisfaction, satisfaction, unmet_neighbours
from planner.session import settle

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations and records
# ---------------------------------------------------------------------------

class Mode(str, Enum):
    CONSERVATIVE = "conservative"   # small steps, rollback, no docking/swaps
    AGGRESSIVE = "aggressive"       # larger steps, no rollback
    SMART = "smart"                 # full three-phase schedule


class Phase(IntEnum):
    IDLE = 0
    GLOBAL = 1       # global placement
    OVERLAP = 2      # overlap resolution
    FINE_TUNE = 3    # fine tuning


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    CANCELLED = "cancelled"


PHASE_LABELS = {
    Phase.IDLE: "idle",
    Phase.GLOBAL: "global placement",
    Phase.OVERLAP: "overlap resolution",
    Phase.FINE_TUNE: "fine tuning",
}

STEP_FRACTION = {Mode.CONSERVATIVE: 0.1, Mode.AGGRESSIVE: 0.2, Mode.SMART: 0.1}
SMART_GLOBAL_STEP_FRACTION = 0.15
DOCK_FRACTION = {Mode.SMART: 0.3, Mode.AGGRESSIVE: 0.5}
GLOBAL_PULL = 0.2
PARTIAL_PULL_START = 20       # iteration after which partial rooms are pulled harder
PARTIAL_PULL_CAP = 30.0       # units per step
MICRO_ALIGN_WINDOW = 10.0     # units
WORST_ROOMS = 15
ESCAPE_ROOMS = 8
ESCAPE_ISOLATED = 3
BLOCKED_SWAPS = 5
SWAP_RADIUS = 200.0


@dataclass
class Progress:
    """Snapshot published after scoring each iteration."""
    iteration: int
    phase: Phase
    aggregate: float
    satisfaction_ratios: dict[str, float]
    stagnation: int = 0
    temperature: float = 1.0

    @property
    def percent(self) -> float:
        return self.aggregate * 100


@dataclass(frozen=True)
class StepResult:
    """Outcome of one ``step()``: continue, or done with a reason."""
    progress: Optional[Progress] = None
    reason: Optional[RunStatus] = None

    @property
    def done(self) -> bool:
        return self.reason is not None


@dataclass
class OptimizerConfig:
    mode: Mode = Mode.SMART
    max_iterations: Optional[int] = None     # None -> per-mode default
    edge_tolerance: float = config.EDGE_TOLERANCE
    area_tolerance: float = config.AREA_TOLERANCE
    step_delay: float = config.DEFAULT_STEP_DELAY   # seconds between iterations
    phase_global_end: int = config.PHASE_GLOBAL_END
    phase_overlap_end: int = config.PHASE_OVERLAP_END
    convergence_score: float = 0.99
    stagnation_epsilon: float = 0.005
    stagnation_limit: int = 10
    stagnation_ceiling: float = 0.95
    overlap_passes: int = 5
    final_constraint_rounds: int = 20    # constraint passes once a run ends
    settle_each_step: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        self.mode = Mode(self.mode)
        if self.max_iterations is None:
            self.max_iterations = (config.SMART_MAX_ITERATIONS if self.mode is Mode.SMART
                                   else config.DEFAULT_MAX_ITERATIONS)
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.step_delay < 0:
            raise ValueError("step_delay must not be negative")
        if not 0 < self.phase_global_end <= self.phase_overlap_end:
            raise ValueError("phase thresholds must satisfy 0 < global_end <= overlap_end")

    @classmethod
    def from_env(cls, **overrides) -> "OptimizerConfig":
        """Defaults from ``config`` (environment / .env), then *overrides*."""
        seed = config.DEFAULT_SEED
        values = {
            "mode": config.DEFAULT_MODE,
            "edge_tolerance": config.EDGE_TOLERANCE,
            "area_tolerance": config.AREA_TOLERANCE,
            "step_delay": config.DEFAULT_STEP_DELAY,
            "seed": int(seed) if seed is not None else None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class OptimizationRun:
    """State of a single optimization run.

    Created by ``LayoutOptimizer.start()`` and discarded when the run ends.
    ``cancel()`` may be called from any thread; it takes effect at the top of
    the next iteration.
    """

    def __init__(self, layout: Layout, cfg: OptimizerConfig):
        self.layout = layout
        self.config = cfg
        self.iteration = 0
        self.phase = Phase.IDLE
        self.status = RunStatus.IDLE
        self.stagnation = 0
        self.previous_score = 0.0
        self.best_score = 0.0
        self.final_score: Optional[float] = None
        self.final_ratios: dict[str, float] = {}
        self.history: list[Progress] = []
        self.rng = random.Random(cfg.seed)
        self.cancel_event = threading.Event()

    def cancel(self):
        self.cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.CONVERGED, RunStatus.MAX_ITERATIONS,
                               RunStatus.CANCELLED)

    @property
    def temperature(self) -> float:
        return max(0.1, 1 - self.iteration / self.config.max_iterations)

    @property
    def latest(self) -> Optional[Progress]:
        return self.history[-1] if self.history else None


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------

class LayoutOptimizer:
    """Moves rooms of a ``Layout`` to satisfy required adjacencies."""

    def __init__(
        self,
        cfg: Optional[OptimizerConfig] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.config = cfg or OptimizerConfig()
        self._sleep = sleep

    # === Public API ========================================================

    def start(self, layout: Layout) -> OptimizationRun:
        """Create a run and take ownership of *layout* until it finishes."""
        if layout.busy:
            raise LayoutBusyError("layout already has an active optimization run")
        run = OptimizationRun(layout, self.config)
        run.status = RunStatus.RUNNING
        run.phase = Phase.GLOBAL
        layout.set_locked(True)
        # record the last in-boundary centre of every room
        enforce_boundary(layout.room_list(), layout.boundary, layout.pinned)
        log.info(
            "Optimizing %d rooms / %d links (mode=%s, max_iterations=%d)",
            len(layout), len(layout.active_links()),
            self.config.mode.value, self.config.max_iterations,
        )
        return run

    def run(
        self,
        layout: Layout,
        on_progress: Optional[Callable[[Progress], None]] = None,
        run: Optional[OptimizationRun] = None,
    ) -> OptimizationRun:
        """Step until converged, out of iterations, or cancelled.

        Args:
            layout: Layout to optimize in place.
            on_progress: Callback receiving each iteration's ``Progress``.
            run: An already started run (so the caller can keep a handle
                for ``cancel()``); a new one is started otherwise.
        """
        if run is None:
            run = self.start(layout)
        try:
            while True:
                result = self.step(run)
                if on_progress and result.progress is not None:
                    on_progress(result.progress)
                if result.done:
                    break
                self._pause(run)
        finally:
            if not run.is_finished:
                # step() raised; release the layout anyway
                run.layout.set_locked(False)
        return run

    def step(self, run: OptimizationRun) -> StepResult:
        """Run exactly one iteration."""
        if run.is_finished:
            return StepResult(reason=run.status)
        if run.is_cancelled:
            self._finish(run, RunStatus.CANCELLED)
            return StepResult(reason=RunStatus.CANCELLED)

        cfg = self.config
        layout = run.layout
        rooms = layout.room_list()
        links = layout.active_links()

        ratios = satisfaction(rooms, links, cfg.edge_tolerance)
        score = aggregate_satisfaction(ratios)
        temperature = run.temperature

        if abs(score - run.previous_score) < cfg.stagnation_epsilon:
            run.stagnation += 1
        else:
            run.stagnation = 0
        run.best_score = max(run.best_score, score)

        progress = Progress(
            iteration=run.iteration, phase=run.phase, aggregate=score,
            satisfaction_ratios=dict(ratios), stagnation=run.stagnation, temperature=temperature,
        )
        run.history.append(progress)

        if score >= cfg.convergence_score:
            self._finish(run, RunStatus.CONVERGED)
            return StepResult(progress=progress, reason=RunStatus.CONVERGED)

        if run.stagnation > cfg.stagnation_limit and score < cfg.stagnation_ceiling:
            log.info("Stagnation at %.1f%% (iteration %d), escaping",
                     score * 100, run.iteration)
            self._escape_stagnation(run, rooms, ratios, temperature)
            run.stagnation = 0

        if cfg.mode is Mode.SMART:
            self._phase_work(run, rooms, ratios)

        worst = sorted((r for r in rooms if ratios[r.id] < 1),
                       key=lambda r: ratios[r.id])[:WORST_ROOMS]

        if run.iteration > PARTIAL_PULL_START:
            self._pull_partial(run, rooms, ratios)

        if cfg.mode is not Mode.CONSERVATIVE:
            if run.iteration > cfg.phase_global_end:
                self._dock_unmet(run, rooms, worst)
            self._swap_blocked(run, rooms, links)

        self._approach_neighbours(run, rooms, worst, temperature)

        if run.phase == Phase.FINE_TUNE and score > 0.9:
            self._micro_align(run, rooms, ratios)

        # hard constraints run last, in every mode
        resolve_overlaps(rooms, layout.pinned, cfg.overlap_passes)
        enforce_boundary(rooms, layout.boundary, layout.pinned)

        if cfg.settle_each_step:
            settle(layout, cfg.edge_tolerance)

        if run.iteration >= cfg.max_iterations:
            self._finish(run, RunStatus.MAX_ITERATIONS)
            return StepResult(progress=progress, reason=RunStatus.MAX_ITERATIONS)

        run.previous_score = score
        run.iteration += 1
        return StepResult(progress=progress)

    # === Lifecycle =========================================================

    def _pause(self, run: OptimizationRun):
        delay = self.config.step_delay
        if delay <= 0:
            return
        if self._sleep is not None:
            self._sleep(delay)
        else:
            # returns early when the run is cancelled
            run.cancel_event.wait(delay)

    def _finish(self, run: OptimizationRun, status: RunStatus):
        if status is not RunStatus.CANCELLED:
            self._settle_constraints(run)
        run.status = status
        run.phase = Phase.IDLE
        run.final_ratios = satisfaction(run.layout.rooms, run.layout.links,
                                        self.config.edge_tolerance)
        run.final_score = aggregate_satisfaction(run.final_ratios)
        run.layout.set_locked(False)
        log.info("Optimization %s after %d iteration(s): %.1f%% satisfied",
                 status.value, run.iteration, run.final_score * 100)

    def _settle_constraints(self, run: OptimizationRun):
        """Re-apply the hard constraints until no room overlaps or leaves the boundary."""
        cfg = self.config
        layout = run.layout
        rooms = layout.room_list()
        for _ in range(cfg.final_constraint_rounds):
            clean = resolve_overlaps(rooms, layout.pinned, cfg.overlap_passes)
            reverted = enforce_boundary(rooms, layout.boundary, layout.pinned)
            if clean and not reverted:
                return
        log.warning("Overlaps remain after %d constraint rounds", cfg.final_constraint_rounds)

    # === Step 1: stagnation escape =========================================

    def _escape_stagnation(
        self,
        run: OptimizationRun,
        rooms: list[Room],
        ratios: dict[str, float],
        temperature: float,
    ):
        """Shake the worst rooms loose when the score stops moving."""
        layout = run.layout
        pinned = layout.pinned
        tol = self.config.edge_tolerance

        problem = [r for r in rooms if ratios[r.id] < 1 and r.id not in pinned]
        # badly satisfied rooms first, then by ratio
        problem.sort(key=lambda r: (0 if ratios[r.id] < 0.5 else 1, ratios[r.id]))

        for room in problem[:ESCAPE_ROOMS]:
            neighbours = layout.neighbours(room.id)
            if not neighbours:
                continue

            if ratios[room.id] >= 0.5:
                # partially satisfied: jump straight to wall-flush distance
                for target in neighbours:
                    if are_adjacent(room, target, tol):
                        continue
                    dx, dy, touch_x, touch_y = edge_gaps(room, target)
                    if abs(dx) > abs(dy):
                        room.x = target.x - axis_sign(dx) * touch_x
                    else:
                        room.y = target.y - axis_sign(dy) * touch_y
            else:
                cx = sum(n.x for n in neighbours) / len(neighbours)
                cy = sum(n.y for n in neighbours) / len(neighbours)
                jump = 100 * temperature + 50
                angle = run.rng.uniform(0, 2 * math.pi)
                tx = cx + math.cos(angle) * jump
                ty = cy + math.sin(angle) * jump
                ratio = 0.5 + temperature * 0.3
                room.x += (tx - room.x) * ratio
                room.y += (ty - room.y) * ratio

            # linked rooms drift along
            for other in neighbours:
                if other.id not in pinned and not are_adjacent(room, other, tol):
                    other.x += (room.x - other.x) * 0.1
                    other.y += (room.y - other.y) * 0.1

        empty = find_empty_cells(rooms, layout.grid.bounds)
        if not empty:
            return
        isolated = [
            r for r in rooms
            if ratios[r.id] < 1 and r.id not in pinned
            and touching_count(r, layout.neighbours(r.id), tol) == 0
        ]
        for room, (ex, ey) in zip(isolated[:ESCAPE_ISOLATED], empty):
            room.x += (ex - room.x) * 0.7
            room.y += (ey - room.y) * 0.7

    # === Step 2: smart-mode phases =========================================

    def _phase_work(self, run: OptimizationRun, rooms: list[Room], ratios: dict[str, float]):
        cfg = self.config
        layout = run.layout

        if run.phase == Phase.GLOBAL and run.iteration < cfg.phase_global_end:
            unsatisfied = sorted((r for r in rooms if ratios[r.id] < 0.5),
                                 key=lambda r: ratios[r.id])
            for room in unsatisfied:
                if room.id in layout.pinned:
                    continue
                neighbours = layout.neighbours(room.id)
                if not neighbours:
                    continue
                cx = sum(n.x for n in neighbours) / len(neighbours)
                cy = sum(n.y for n in neighbours) / len(neighbours)
                room.x += (cx - room.x) * GLOBAL_PULL
                room.y += (cy - room.y) * GLOBAL_PULL
                enforce_boundary([room], layout.boundary, layout.pinned)
        elif run.phase == Phase.GLOBAL:
            self._enter_phase(run, Phase.OVERLAP)
        elif run.phase == Phase.OVERLAP and run.iteration < cfg.phase_overlap_end:
            resolve_overlaps(rooms, layout.pinned, cfg.overlap_passes)
            resolve_overlaps(rooms, layout.pinned, cfg.overlap_passes)
        elif run.phase == Phase.OVERLAP:
            self._enter_phase(run, Phase.FINE_TUNE)

    @staticmethod
    def _enter_phase(run: OptimizationRun, phase: Phase):
        log.info("Iteration %d: entering phase %d (%s)",
                 run.iteration, int(phase), PHASE_LABELS[phase])
        run.phase = phase

    # === Step 3: partially satisfied rooms =================================

    def _pull_partial(self, run: OptimizationRun, rooms: list[Room], ratios: dict[str, float]):
        layout = run.layout
        tol = self.config.edge_tolerance
        for room in rooms:
            ratio = ratios[room.id]
            if not 0.5 <= ratio < 1 or room.id in layout.pinned:
                continue
            for target in layout.neighbours(room.id):
                if are_adjacent(room, target, tol):
                    continue
                dx = target.x - room.x
                dy = target.y - room.y
                distance = math.hypot(dx, dy)
                if distance == 0:
                    continue
                move = min(distance * (0.15 + (1 - ratio) * 0.2), PARTIAL_PULL_CAP)
                room.x += dx / distance * move
                room.y += dy / distance * move

    # === Step 4: docking and swaps =========================================

    def _dock_unmet(self, run: OptimizationRun, rooms: list[Room], worst: list[Room]):
        layout = run.layout
        tol = self.config.edge_tolerance
        fraction = DOCK_FRACTION[self.config.mode]
        links = layout.active_links()
        for room in worst:
            if room.id in layout.pinned:
                continue
            for other in unmet_neighbours(room, layout.rooms, links, tol):
                if other.id in layout.pinned:
                    continue
                dock = find_best_dock(room, other, rooms, tol)
                if dock is None:
                    continue
                other.x += (dock.x - other.x) * fraction
                other.y += (dock.y - other.y) * fraction
                if run.phase == Phase.FINE_TUNE:
                    snap_room(other, layout.grid)

    def _swap_blocked(self, run: OptimizationRun, rooms: list[Room], links):
        layout = run.layout
        tol = self.config.edge_tolerance
        blocked = [r for r in find_blocked_rooms(rooms, links, tol)
                   if r.id not in layout.pinned]
        for room in blocked[:BLOCKED_SWAPS]:
            for other in rooms:
                if other.id == room.id or other.id in layout.pinned:
                    continue
                if math.hypot(room.x - other.x, room.y - other.y) >= SWAP_RADIUS:
                    continue
                if try_swap(room, other, rooms, links, tol):
                    log.debug("Swapped %s <-> %s", room.id, other.id)
                    break

    # === Step 5: bounded step towards the nearest unmet neighbour ==========

    def _approach_neighbours(
        self,
        run: OptimizationRun,
        rooms: list[Room],
        worst: list[Room],
        temperature: float,
    ):
        cfg = self.config
        layout = run.layout
        grid = layout.grid
        tol = cfg.edge_tolerance
        links = layout.active_links()

        fraction = STEP_FRACTION[cfg.mode]
        if cfg.mode is Mode.SMART and run.phase == Phase.GLOBAL:
            fraction = SMART_GLOBAL_STEP_FRACTION
        boost = (1 + temperature) if run.stagnation > 5 else 1.0
        max_step = grid.spacing_units * 2
        check = cfg.mode is Mode.CONSERVATIVE or run.phase == Phase.FINE_TUNE

        for room in worst:
            if room.id in layout.pinned:
                continue
            unmet = unmet_neighbours(room, layout.rooms, links, tol)
            if not unmet:
                continue
            target = min(unmet, key=lambda o: math.hypot(o.x - room.x, o.y - room.y))
            dx = target.x - room.x
            dy = target.y - room.y
            distance = math.hypot(dx, dy)
            if distance == 0:
                continue

            move = min(distance * fraction * boost, max_step)
            new_x = room.x + dx / distance * move
            new_y = room.y + dy / distance * move
            if grid.position_snap_active and run.phase != Phase.GLOBAL:
                new_x, new_y = snap_position(new_x, new_y, room.width, room.height,
                                             grid.bounds, grid.spacing_units)

            if check:
                before_overlaps = {o.id for o in rooms
                                   if o.id != room.id and rects_overlap(room, o)}
                was_inside = room_inside(room, layout.boundary)
            old_x, old_y = room.x, room.y
            room.x, room.y = new_x, new_y

            if check:
                new_overlap = any(
                    o.id != room.id and o.id not in before_overlaps and rects_overlap(room, o)
                    for o in rooms
                )
                left_boundary = was_inside and not room_inside(room, layout.boundary)
                if new_overlap or left_boundary:
                    room.x, room.y = old_x, old_y

    # === Step 6: micro-alignment ===========================================

    def _micro_align(self, run: OptimizationRun, rooms: list[Room], ratios: dict[str, float]):
        """Close small residual gaps between almost-flush linked rooms."""
        layout = run.layout
        tol = self.config.edge_tolerance
        for room in rooms:
            if not 0.8 < ratios[room.id] < 1 or room.id in layout.pinned:
                continue
            for other in layout.neighbours(room.id):
                if are_adjacent(room, other, tol):
                    continue
                other_pinned = other.id in layout.pinned
                dx, dy, touch_x, touch_y = edge_gaps(room, other)

                if abs(abs(dx) - touch_x) < MICRO_ALIGN_WINDOW:
                    gap = (abs(dx) - touch_x) * axis_sign(dx)
                    if other_pinned:
                        room.x += gap
                    else:
                        room.x += gap / 2
                        other.x -= gap / 2

                if abs(abs(dy) - touch_y) < MICRO_ALIGN_WINDOW:
                    gap = (abs(dy) - touch_y) * axis_sign(dy)
                    if other_pinned:
                        room.y += gap
                    else:
                        room.y += gap / 2
                        other.y -= gap / 2


def optimize(
    layout: Layout,
    cfg: Optional[OptimizerConfig] = None,
    on_progress: Optional[Callable[[Progress], None]] = None,
) -> OptimizationRun:
    """Convenience wrapper: run a fresh optimizer over *layout*."""
    return LayoutOptimizer(cfg).run(layout, on_progress=on_progress)


__all__ = [
    "LayoutOptimizer", "OptimizationRun", "OptimizerConfig", "Mode", "Phase",
    "Progress", "RunStatus", "StepResult", "optimize",
]
