"""
config.py — Simulation Settings
================================
Every tunable number the host hands to the solver lives here, so a run
can be described by one JSON file:

  {
    "grid":      {"cols": 64, "rows": 48, "cell_size": 1.0},
    "particles": {"count": 2000, "radius": 0.3},
    "physics":   {"gravity": -9.81},
    "solver":    {"iterations": 50, "over_relaxation": 1.9, "stiffness": 1.0},
    "time":      {"time_scale": 1.0, "iterations_per_frame": 4}
  }

Missing sections/keys fall back to the dataclass defaults.
"""

import json
from dataclasses import dataclass, asdict

from .solver import ORDER_SEQUENTIAL, ORDER_RED_BLACK


@dataclass
class SimulationConfig:
    """
    Settings for one simulation run.

    Grid and particle sizes are fixed for the lifetime of a FluidSimulation;
    time and solver settings are read every substep.
    """

    # Grid
    cols: int = 64
    rows: int = 48
    cell_size: float = 1.0

    # Particles
    num_particles: int = 2000
    particle_radius: float = 0.3
    hash_spacing_factor: float = 2.2
    push_apart_iterations: int = 2

    # Physics
    gravity: float = -9.81
    interaction_radius: float = 6.0

    # Solver
    incompressibility_iterations: int = 50
    over_relaxation: float = 1.9
    stiffness: float = 1.0
    solver_ordering: str = ORDER_SEQUENTIAL

    # Time
    time_scale: float = 1.0
    iterations_per_frame: int = 4
    frame_time: float = 1.0 / 120.0

    # Level goal: fraction of particles that must reach a drain
    win_fraction: float = 2.0 / 3.0

    @property
    def bounds_size(self) -> tuple:
        """World-space (width, height) of the grid."""
        return (self.cols * self.cell_size, self.rows * self.cell_size)

    @property
    def total_cells(self) -> int:
        return self.cols * self.rows

    def validate(self) -> "SimulationConfig":
        """Raise ValueError on settings the solver can't run with. Returns self."""
        if self.cols < 3 or self.rows < 3:
            raise ValueError(f"Grid needs at least 3x3 cells, got {self.cols}x{self.rows}")
        if self.cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {self.cell_size}")
        if self.num_particles < 0:
            raise ValueError(f"num_particles can't be negative, got {self.num_particles}")
        if self.particle_radius <= 0:
            raise ValueError(f"particle_radius must be positive, got {self.particle_radius}")
        if self.iterations_per_frame < 1:
            raise ValueError(f"iterations_per_frame must be >= 1, got {self.iterations_per_frame}")
        if not 0.0 < self.over_relaxation < 2.0:
            raise ValueError(f"over_relaxation must be in (0, 2), got {self.over_relaxation}")
        if self.solver_ordering not in (ORDER_SEQUENTIAL, ORDER_RED_BLACK):
            raise ValueError(f"Unknown solver_ordering: {self.solver_ordering}")
        if not 0.0 < self.win_fraction <= 1.0:
            raise ValueError(f"win_fraction must be in (0, 1], got {self.win_fraction}")
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        """Build a config from the sectioned layout shown in the module docstring."""
        grid = data.get("grid", {})
        particles = data.get("particles", {})
        physics = data.get("physics", {})
        solver = data.get("solver", {})
        timing = data.get("time", {})
        defaults = cls()

        return cls(
            cols=grid.get("cols", defaults.cols),
            rows=grid.get("rows", defaults.rows),
            cell_size=grid.get("cell_size", defaults.cell_size),
            num_particles=particles.get("count", defaults.num_particles),
            particle_radius=particles.get("radius", defaults.particle_radius),
            hash_spacing_factor=particles.get("hash_spacing_factor", defaults.hash_spacing_factor),
            push_apart_iterations=particles.get("push_apart_iterations", defaults.push_apart_iterations),
            gravity=physics.get("gravity", defaults.gravity),
            interaction_radius=physics.get("interaction_radius", defaults.interaction_radius),
            incompressibility_iterations=solver.get("iterations", defaults.incompressibility_iterations),
            over_relaxation=solver.get("over_relaxation", defaults.over_relaxation),
            stiffness=solver.get("stiffness", defaults.stiffness),
            solver_ordering=solver.get("ordering", defaults.solver_ordering),
            time_scale=timing.get("time_scale", defaults.time_scale),
            iterations_per_frame=timing.get("iterations_per_frame", defaults.iterations_per_frame),
            frame_time=timing.get("frame_time", defaults.frame_time),
            win_fraction=data.get("win_fraction", defaults.win_fraction),
        ).validate()

    @classmethod
    def from_json(cls, config_path: str) -> "SimulationConfig":
        """Load and validate a config from a JSON file."""
        with open(config_path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
