"""
simulation.py — Master Physics Loop
====================================
Ties every pass together. One call to `step(dt)` advances the water by
one substep:

  1. Integrate particles (gravity)
  2. Push overlapping particles apart (spatial hash)
  3. Collide with the box walls
  4. Collide with terrain (dynamic SDF, then static SDF)
  5. Absorb particles sitting in drains (score)
  6. Particle → grid velocity transfer (marks WATER cells)
  7. Density estimate (rest density measured once)
  8. Incompressibility solve
  9. Grid → particle velocity transfer

`run_frame(frame_time)` is what a host calls once per rendered frame: it
respects the pause/step state and splits the frame into
`iterations_per_frame` substeps.
"""

import enum
import logging
import time
from fractions import Fraction

import numpy as np
from .boundaries import absorb_drained, constrain_to_bounds
from .collider import SDFLayer, TerrainCollider
from .config import SimulationConfig
from .forces import integrate
from .grid import FluidGrid, WATER_CELL
from .particles import ParticleSet
from .solver import solve_incompressibility
from .spatial_hash import SpatialHash
from .spawn import SpawnData, build_spawn
from .transfer import compute_densities, grid_to_particles, particles_to_grid

logger = logging.getLogger(__name__)


class SimState(enum.Enum):
    """Host-driven run state."""
    RUNNING   = "running"
    PAUSED    = "paused"
    STEP_ONCE = "step_once"


class FluidSimulation:
    """
    The complete 2D PIC water simulation.

    Usage:
        sim = FluidSimulation(SimulationConfig(cols=40, rows=30, num_particles=800))
        sim.resume()
        for frame in range(100):
            sim.run_frame(1 / 60)
            positions = sim.particles.positions   # hand to a renderer
    """

    def __init__(self, config: SimulationConfig = None, spawn: SpawnData = None,
                 static_sdf: SDFLayer = None, dynamic_sdf: SDFLayer = None):
        """
        Args:
            config      : Simulation settings (defaults if omitted)
            spawn       : Initial level state; a default spawn is built if omitted
            static_sdf  : Terrain SDF that never changes
            dynamic_sdf : Terrain SDF the host may edit between substeps
        """
        self.config = (config or SimulationConfig()).validate()
        cfg = self.config

        if spawn is None:
            spawn = build_spawn(cfg)
        if spawn.cell_types.size != cfg.total_cells:
            raise ValueError(
                f"Spawn has {spawn.cell_types.size} cells, config expects {cfg.total_cells}"
            )
        self.spawn = spawn

        self.grid = FluidGrid(cfg.cols, cfg.rows, cfg.cell_size)
        self.particles = ParticleSet(spawn.positions, spawn.velocities)
        self.hash = SpatialHash(self.grid.bounds_size, cfg.particle_radius, cfg.hash_spacing_factor)
        self.collider = TerrainCollider(cfg.particle_radius, static_sdf, dynamic_sdf)

        # Reset restores the dynamic terrain too, so keep its starting shape
        self._dynamic_sdf_initial = None if dynamic_sdf is None else dynamic_sdf.distances.copy()

        self.state = SimState.PAUSED
        self.rest_density = 0.0
        self.score = 0
        self.substep_count = 0
        self.frame = 0
        self.perf_log = []   # stores metrics per substep

        self.grid.reset(spawn.cell_types, spawn.cell_velocities)

    # ── Host commands (pause / step / reset) ──────────────────────────────────

    def toggle_pause(self) -> SimState:
        """RUNNING ↔ PAUSED. A pending single step is cancelled."""
        if self.state == SimState.RUNNING:
            self._set_state(SimState.PAUSED)
        else:
            self._set_state(SimState.RUNNING)
        return self.state

    def resume(self):
        self._set_state(SimState.RUNNING)

    def pause(self):
        self._set_state(SimState.PAUSED)

    def step_once(self):
        """Run exactly one frame on the next `run_frame`, then pause again."""
        self._set_state(SimState.STEP_ONCE)

    def reset(self):
        """
        Put every piece of mutable state back to the spawn snapshot and pause.
        Must not be called from inside `step()`.
        """
        spawn = self.spawn
        self.particles.load(spawn.positions, spawn.velocities)
        self.grid.reset(spawn.cell_types, spawn.cell_velocities)
        if self._dynamic_sdf_initial is not None:
            np.copyto(self.collider.dynamic_layer.distances, self._dynamic_sdf_initial)

        self.rest_density = 0.0
        self.score = 0
        self.substep_count = 0
        self.frame = 0
        self.perf_log.clear()
        self._set_state(SimState.PAUSED)
        logger.info("Simulation reset to spawn state")

    def _set_state(self, state: SimState):
        if state != self.state:
            logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    # ── Stepping ──────────────────────────────────────────────────────────────

    def run_frame(self, frame_time: float = None) -> list:
        """
        Advance one rendered frame unless paused.

        The frame is split into `iterations_per_frame` substeps of
        frame_time / iterations_per_frame * time_scale each.

        Returns the metrics dict of every substep run (empty when paused).
        """
        if self.state == SimState.PAUSED:
            return []

        cfg = self.config
        if frame_time is None:
            frame_time = cfg.frame_time
        dt = frame_time / cfg.iterations_per_frame * cfg.time_scale

        metrics = [self.step(dt) for _ in range(cfg.iterations_per_frame)]
        self.frame += 1

        if self.state == SimState.STEP_ONCE:
            self._set_state(SimState.PAUSED)
        return metrics

    def step(self, dt: float) -> dict:
        """
        Advance the simulation by one substep of `dt` seconds.

        Runs regardless of the pause state (that is `run_frame`'s job).
        Returns a metrics dict; its "substep" field doubles as the
        step-completed notification.
        """
        cfg = self.config
        g = self.grid
        p = self.particles
        t_total_start = time.perf_counter()

        # ── Step 1: Integrate ──────────────────────────────────────────────
        t0 = time.perf_counter()
        integrate(p, cfg.gravity, dt)
        t_integrate = (time.perf_counter() - t0) * 1000

        # ── Step 2: Push apart ─────────────────────────────────────────────
        t0 = time.perf_counter()
        pushes = self.hash.push_apart(p.positions, p.active_mask(), cfg.push_apart_iterations)
        t_push = (time.perf_counter() - t0) * 1000

        # ── Steps 3-5: Walls, terrain, drains ──────────────────────────────
        t0 = time.perf_counter()
        wall_hits = constrain_to_bounds(g, p, cfg.particle_radius)
        terrain_hits = self.collider.collide(p)
        drained = absorb_drained(g, p)
        self.score += drained
        t_collide = (time.perf_counter() - t0) * 1000

        # ── Step 6: Particles → grid ───────────────────────────────────────
        t0 = time.perf_counter()
        particles_to_grid(g, p)
        t_p2g = (time.perf_counter() - t0) * 1000

        # ── Step 7: Densities ──────────────────────────────────────────────
        t0 = time.perf_counter()
        self.rest_density = compute_densities(g, p, self.rest_density)
        t_density = (time.perf_counter() - t0) * 1000

        # ── Step 8: Incompressibility ──────────────────────────────────────
        t0 = time.perf_counter()
        solve_metrics = solve_incompressibility(
            g, self.rest_density,
            iterations=cfg.incompressibility_iterations,
            over_relaxation=cfg.over_relaxation,
            stiffness=cfg.stiffness,
            ordering=cfg.solver_ordering,
        )
        t_solve = (time.perf_counter() - t0) * 1000

        # ── Step 9: Grid → particles ───────────────────────────────────────
        t0 = time.perf_counter()
        grid_to_particles(g, p)
        t_g2p = (time.perf_counter() - t0) * 1000

        # ── Bookkeeping ────────────────────────────────────────────────────
        self.substep_count += 1
        t_total = (time.perf_counter() - t_total_start) * 1000

        metrics = {
            "substep"          : self.substep_count,
            "dt"               : dt,
            "total_ms"         : t_total,
            "integrate_ms"     : t_integrate,
            "push_apart_ms"    : t_push,
            "collide_ms"       : t_collide,
            "p2g_ms"           : t_p2g,
            "density_ms"       : t_density,
            "solve_ms"         : t_solve,
            "g2p_ms"           : t_g2p,
            "push_corrections" : pushes,
            "wall_hits"        : wall_hits,
            "terrain_hits"     : terrain_hits,
            "drained"          : drained,
            "score"            : self.score,
            "active_particles" : p.active_count(),
            "water_cells"      : g.count(WATER_CELL),
            "rest_density"     : self.rest_density,
            "divergence_max"   : solve_metrics["divergence_after_max"],
        }
        self.perf_log.append(metrics)
        return metrics

    # ── Queries ───────────────────────────────────────────────────────────────

    @property
    def win_threshold(self) -> int:
        """Drained particles needed to clear the level, rounded down like the level trigger."""
        frac = Fraction(self.config.win_fraction).limit_denominator(1000)
        return self.particles.count * frac.numerator // frac.denominator

    @property
    def has_won(self) -> bool:
        """True once enough particles have been drained to clear the level."""
        if self.particles.count == 0:
            return False
        return self.score >= self.win_threshold

    def snapshot(self) -> dict:
        """
        Copy of everything a renderer or recorder needs.
        Safe to keep; later steps don't modify it.
        """
        return {
            "substep"             : self.substep_count,
            "score"               : self.score,
            "rest_density"        : self.rest_density,
            "particle_positions"  : self.particles.positions.copy(),
            "particle_velocities" : self.particles.velocities.copy(),
            "cell_type"           : self.grid.cell_type.reshape(self.grid.rows, self.grid.cols).copy(),
            "cell_velocity"       : self.grid.velocity.reshape(self.grid.rows, self.grid.cols, 2).copy(),
            "density"             : self.grid.density.reshape(self.grid.rows, self.grid.cols).copy(),
        }

    def print_status(self):
        """Pretty-print current simulation state."""
        g = self.grid
        div = g.compute_divergence()
        print(f"\n{'='*50}")
        print(f"  Substep: {self.substep_count}  |  State: {self.state.value}")
        print(f"  Particles : {self.particles.active_count()}/{self.particles.count} active")
        print(f"  Score     : {self.score}{'  (level cleared)' if self.has_won else ''}")
        print(f"  Water     : {g.count(WATER_CELL)} cells, rest density={self.rest_density:.4f}")
        print(f"  Divergence: max={np.abs(div).max():.6f}, mean={np.abs(div).mean():.8f}")
        if self.perf_log:
            last = self.perf_log[-1]
            print(f"  Perf      : {last['total_ms']:.1f}ms/substep")
        print(f"{'='*50}")
