"""
particles.py — Lagrangian Particle Storage
===========================================
Positions and velocities of every water particle, as (N, 2) arrays.

A particle that has been absorbed (e.g. by a drain) is not removed from
the arrays. It is flagged in `disabled` and parked at DISABLED_POSITION
so renderers draw it off-screen. Every pass checks `active_mask()` and
skips flagged particles, so indices stay stable for the whole run.

The flag is the only source of truth: a live particle that strays past
x = 0 within a substep stays live and is clamped back by the walls.
"""

import numpy as np


# Where disabled particles are parked. Particles handed in at this
# position (x < 0) start out disabled.
DISABLED_POSITION = (-1.0, -1.0)


def _sentinel_flags(positions: np.ndarray) -> np.ndarray:
    return positions[:, 0] < 0.0


class ParticleSet:
    """
    Owned by the simulation loop; the hash, collider and transfer passes
    borrow the arrays for a single call.
    """

    def __init__(self, positions: np.ndarray, velocities: np.ndarray = None,
                 disabled: np.ndarray = None):
        """
        Args:
            positions  : (N, 2) world positions
            velocities : (N, 2) velocities, zeros if omitted
            disabled   : (N,) flags; derived from DISABLED_POSITION if omitted
        """
        positions = np.array(positions, dtype=np.float64)
        if positions.ndim != 2 or positions.shape[1] != 2:
            raise ValueError(f"positions must have shape (N, 2), got {positions.shape}")

        if velocities is None:
            velocities = np.zeros_like(positions)
        velocities = np.array(velocities, dtype=np.float64)
        if velocities.shape != positions.shape:
            raise ValueError(
                f"velocities shape {velocities.shape} does not match positions {positions.shape}"
            )

        if disabled is None:
            disabled = _sentinel_flags(positions)
        disabled = np.array(disabled, dtype=bool)
        if disabled.shape != (len(positions),):
            raise ValueError(
                f"disabled flags shape {disabled.shape} does not match {len(positions)} particles"
            )

        self.positions = positions
        self.velocities = velocities
        self.disabled = disabled

    def __len__(self):
        return len(self.positions)

    @property
    def count(self) -> int:
        """Total particles, including disabled ones."""
        return len(self.positions)

    def active_mask(self) -> np.ndarray:
        """Boolean mask of particles that still take part in the simulation."""
        return ~self.disabled

    def active_count(self) -> int:
        return int(np.count_nonzero(~self.disabled))

    def disable(self, mask: np.ndarray):
        """Flag the selected particles, park them at the sentinel and stop them."""
        self.disabled[mask] = True
        self.positions[mask] = DISABLED_POSITION
        self.velocities[mask] = 0.0

    def load(self, positions: np.ndarray, velocities: np.ndarray):
        """
        Copy new state into the existing arrays (keeps borrowed references valid).
        Flags are re-derived from the sentinel position.
        """
        np.copyto(self.positions, positions)
        np.copyto(self.velocities, velocities)
        np.copyto(self.disabled, _sentinel_flags(self.positions))

    def copy(self) -> "ParticleSet":
        return ParticleSet(self.positions.copy(), self.velocities.copy(), self.disabled.copy())

    def speeds(self) -> np.ndarray:
        """Velocity magnitude per particle (0 for disabled ones)."""
        return np.linalg.norm(self.velocities, axis=1)
