"""
boundaries.py — Box Walls and Drains
=====================================
Two cheap per-particle passes that run after push-apart:

  1. constrain_to_bounds : inelastic collision with the outer stone ring.
     Particles are clamped to [cell_size + r, (cols-1)*cell_size - r] and
     the velocity component along the clamped axis is zeroed.
  2. absorb_drained      : particles sitting in a DRAIN cell are scored
     and parked. Runs before the grid transfer so they never contribute
     weight to the velocity field.
"""

import logging

import numpy as np
from .grid import FluidGrid, DRAIN_CELL
from .particles import ParticleSet

logger = logging.getLogger(__name__)


def constrain_to_bounds(grid: FluidGrid, particles: ParticleSet, radius: float) -> int:
    """
    Clamp active particles inside the interior of the grid.

    Returns the number of clamped position components (for diagnostics).
    """
    h = grid.cell_size
    lower = np.array([h + radius, h + radius])
    upper = np.array([(grid.cols - 1) * h - radius, (grid.rows - 1) * h - radius])

    active = particles.active_mask()
    pos = particles.positions[active]
    vel = particles.velocities[active]

    below = pos < lower
    above = pos > upper
    clamped = below | above

    pos = np.clip(pos, lower, upper)
    vel[clamped] = 0.0

    particles.positions[active] = pos
    particles.velocities[active] = vel
    return int(np.count_nonzero(clamped))


def absorb_drained(grid: FluidGrid, particles: ParticleSet) -> int:
    """
    Disable every active particle whose containing cell is a drain.

    Already-disabled particles are ignored, so calling this twice on the
    same state scores each particle once.

    Returns the number of particles absorbed this call.
    """
    active = particles.active_mask()
    if not np.any(active):
        return 0

    idx = np.flatnonzero(active)
    cells = grid.containing_cells(particles.positions[idx])
    drained = idx[grid.cell_type[cells] == DRAIN_CELL]
    if len(drained) == 0:
        return 0

    mask = np.zeros(len(particles), dtype=bool)
    mask[drained] = True
    particles.disable(mask)
    logger.debug("Drains absorbed %d particle(s)", len(drained))
    return len(drained)
