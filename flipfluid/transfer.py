"""
transfer.py — Particle ↔ Grid Velocity Transfer (PIC)
======================================================
This is where the Lagrangian particles and the Eulerian grid meet.

Particle → Grid (scatter):
  Every particle splats its velocity onto the 4 surrounding face samples
  with bilinear weights. Each velocity component uses its own stencil
  because the components live on different faces of the MAC cell:
    u (left face)   → sample point offset (0,   0.5) cells
    v (bottom face) → sample point offset (0.5, 0  ) cells
  Face velocity = Σ w·v / Σ w.

Grid → Particle (gather):
  The same stencils read the (now divergence-free) face velocities back.
  Faces with air on both sides hold no information, so they're masked out
  and the remaining weights are renormalized.

Density:
  A unit mass per particle splatted with the cell-centered stencil
  (offset (0.5, 0.5)). Used by the solver to push apart clumped water.

All stencil math is done in grid units (world / cell_size), vectorized
over particles.
"""

import logging

import numpy as np
from .grid import FluidGrid, AIR_CELL, WATER_CELL, is_solid
from .particles import ParticleSet

logger = logging.getLogger(__name__)


# ── Stencil offsets (in cells) ────────────────────────────────────────────────
U_OFFSET       = (0.0, 0.5)
V_OFFSET       = (0.5, 0.0)
DENSITY_OFFSET = (0.5, 0.5)


def _bilinear_stencil(grid: FluidGrid, positions: np.ndarray, offset: tuple,
                      max_col: int, max_row: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Bilinear interpolation stencil for a batch of world positions.

    Positions are clamped into [1, dim-1] cells, shifted by `offset`, and the
    lower-left corner is clamped into [0, max]. Corner order is
    (x0,y0), (x1,y0), (x1,y1), (x0,y1).

    Args:
        positions        : (N, 2) world positions
        offset           : (dx, dy) sample-point offset in cells
        max_col, max_row : Largest corner index allowed

    Returns:
        indices : (N, 4) flat cell indices
        weights : (N, 4) bilinear weights (sum to 1)
    """
    h = grid.cell_size
    x = np.clip(positions[:, 0] / h, 1.0, grid.cols - 1)
    y = np.clip(positions[:, 1] / h, 1.0, grid.rows - 1)

    dx, dy = offset
    x0 = np.clip(np.floor(x - dx), 0, max_col).astype(np.int64)
    y0 = np.clip(np.floor(y - dy), 0, max_row).astype(np.int64)
    x1 = np.clip(x0 + 1, 0, max_col)
    y1 = np.clip(y0 + 1, 0, max_row)

    tx = x - dx - x0
    ty = y - dy - y0
    sx = 1.0 - tx
    sy = 1.0 - ty

    weights = np.stack([sx * sy, tx * sy, tx * ty, sx * ty], axis=1)
    indices = np.stack([
        grid.cell_index(x0, y0),
        grid.cell_index(x1, y0),
        grid.cell_index(x1, y1),
        grid.cell_index(x0, y1),
    ], axis=1)
    return indices, weights


def _velocity_stencils(grid: FluidGrid, positions: np.ndarray):
    """(u_indices, u_weights, v_indices, v_weights) for the staggered faces."""
    ui, uw = _bilinear_stencil(grid, positions, U_OFFSET, grid.cols - 2, grid.rows - 2)
    vi, vw = _bilinear_stencil(grid, positions, V_OFFSET, grid.cols - 2, grid.rows - 2)
    return ui, uw, vi, vw


def mark_water_cells(grid: FluidGrid, particles: ParticleSet) -> int:
    """
    Rebuild the transient WATER marking from particle occupancy.

    Existing WATER cells become AIR, then any AIR cell containing an active
    particle becomes WATER. Solid and drain cells are never relabelled.

    Returns the number of water cells.
    """
    grid.cell_type[grid.cell_type == WATER_CELL] = AIR_CELL

    active = particles.active_mask()
    if np.any(active):
        cells = np.unique(grid.containing_cells(particles.positions[active]))
        cells = cells[grid.cell_type[cells] == AIR_CELL]
        grid.cell_type[cells] = WATER_CELL
    return grid.count(WATER_CELL)


def particles_to_grid(grid: FluidGrid, particles: ParticleSet) -> np.ndarray:
    """
    Scatter particle velocities onto the MAC grid.

    Solid faces (the cell itself, or its left/bottom neighbour, is TERRAIN
    or STONE) keep the velocity they had before the transfer.

    Modifies: grid.cell_type, grid.velocity, grid.weight (in-place)
    Returns the pre-transfer velocity array.
    """
    prev_velocity = grid.velocity.copy()
    grid.weight[:] = 0.0
    grid.velocity[:] = 0.0
    mark_water_cells(grid, particles)

    active = particles.active_mask()
    pos = particles.positions[active]
    vel = particles.velocities[active]

    if len(pos) > 0:
        ui, uw, vi, vw = _velocity_stencils(grid, pos)

        # np.add.at accumulates repeated indices (many particles per face)
        np.add.at(grid.velocity[:, 0], ui, vel[:, 0, np.newaxis] * uw)
        np.add.at(grid.weight[:, 0], ui, uw)
        np.add.at(grid.velocity[:, 1], vi, vel[:, 1, np.newaxis] * vw)
        np.add.at(grid.weight[:, 1], vi, vw)

    # ── Normalize by accumulated weight ────────────────────────────────────
    filled = grid.weight > 0.0
    grid.velocity[filled] /= grid.weight[filled]

    # ── Restore solid faces ────────────────────────────────────────────────
    solid = is_solid(grid.cell_type).reshape(grid.rows, grid.cols)
    keep_u = solid.copy()
    keep_u[:, 1:] |= solid[:, :-1]
    keep_v = solid.copy()
    keep_v[1:, :] |= solid[:-1, :]

    keep_u = keep_u.reshape(-1)
    keep_v = keep_v.reshape(-1)
    grid.velocity[keep_u, 0] = prev_velocity[keep_u, 0]
    grid.velocity[keep_v, 1] = prev_velocity[keep_v, 1]
    return prev_velocity


def compute_densities(grid: FluidGrid, particles: ParticleSet, rest_density: float = 0.0) -> float:
    """
    Estimate per-cell particle density and lazily fix the rest density.

    Every active particle contributes a unit mass spread over the 4 cells
    around it (cell-centered stencil).

    Args:
        rest_density : Current rest density. 0 means "not measured yet".

    Returns the rest density to use from now on: unchanged if it was
    already set, otherwise the mean density over WATER cells this frame
    (still 0 if there is no water).

    Modifies: grid.density (in-place)
    """
    grid.density[:] = 0.0

    active = particles.active_mask()
    pos = particles.positions[active]
    if len(pos) > 0:
        idx, w = _bilinear_stencil(grid, pos, DENSITY_OFFSET, grid.cols - 1, grid.rows - 1)
        np.add.at(grid.density, idx, w)

    if rest_density == 0.0:
        water = grid.cell_type == WATER_CELL
        if np.any(water):
            rest_density = float(grid.density[water].mean())
            logger.debug("Rest density initialized to %.4f over %d water cells",
                         rest_density, int(np.count_nonzero(water)))
    return rest_density


def grid_to_particles(grid: FluidGrid, particles: ParticleSet):
    """
    Gather face velocities back onto the particles (pure PIC).

    A u face is valid if the cell or its left neighbour is not AIR; a v face
    if the cell or its bottom neighbour is not AIR. If no valid face
    surrounds a particle, that velocity component is left as it was.

    Modifies: particles.velocities (in-place)
    """
    active = particles.active_mask()
    if not np.any(active):
        return

    idx = np.flatnonzero(active)
    pos = particles.positions[idx]
    ui, uw, vi, vw = _velocity_stencils(grid, pos)

    not_air = grid.cell_type != AIR_CELL
    u_valid = (not_air[ui] | not_air[ui - 1]).astype(np.float64)
    v_valid = (not_air[vi] | not_air[vi - grid.cols]).astype(np.float64)

    _gather_component(particles.velocities, idx, 0, grid.velocity[:, 0], ui, uw * u_valid)
    _gather_component(particles.velocities, idx, 1, grid.velocity[:, 1], vi, vw * v_valid)


def _gather_component(velocities: np.ndarray, idx: np.ndarray, axis: int,
                      face_values: np.ndarray, indices: np.ndarray, weights: np.ndarray):
    """Validity-weighted average of one component; zero-weight particles untouched."""
    total = weights.sum(axis=1)
    has_weight = total > 0.0
    if not np.any(has_weight):
        return

    weighted = (weights * face_values[indices]).sum(axis=1)
    velocities[idx[has_weight], axis] = weighted[has_weight] / total[has_weight]
