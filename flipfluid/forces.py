"""
forces.py — Particle Integration and External Forces
=====================================================
Moves particles forward in time. Gravity only acts on the vertical
velocity component:

  v.y += g * dt
  x   += v * dt

The grid never sees gravity directly; it only sees the particle
velocities scattered onto it afterwards.
"""

import numpy as np
from .particles import ParticleSet


# ── Defaults ──────────────────────────────────────────────────────────────────
DEFAULT_INTERACTION_STRENGTH = 40.0


def integrate(particles: ParticleSet, gravity: float, dt: float):
    """
    Symplectic Euler step for every active particle.

    Modifies: particles.velocities, particles.positions (in-place)
    """
    active = particles.active_mask()
    particles.velocities[active, 1] += gravity * dt
    particles.positions[active] += particles.velocities[active] * dt


def apply_impulse(particles: ParticleSet, center: tuple, radius: float,
                  strength: float = DEFAULT_INTERACTION_STRENGTH, dt: float = 1.0 / 120.0) -> int:
    """
    Pull particles toward (strength > 0) or push them away from (strength < 0)
    a point, e.g. the mouse cursor. Force falls off linearly to zero at `radius`.

    Args:
        center   : (x, y) world position of the interaction
        radius   : Interaction radius in world units
        strength : Acceleration at the center
        dt       : Time over which the impulse is applied

    Returns the number of particles affected.
    """
    if radius <= 0:
        raise ValueError(f"Interaction radius must be positive, got {radius}")

    active = particles.active_mask()
    offset = np.asarray(center, dtype=np.float64) - particles.positions
    dist = np.linalg.norm(offset, axis=1)
    hit = active & (dist < radius) & (dist > 0.0)
    if not np.any(hit):
        return 0

    falloff = 1.0 - dist[hit] / radius
    direction = offset[hit] / dist[hit, np.newaxis]
    particles.velocities[hit] += direction * (strength * falloff * dt)[:, np.newaxis]
    return int(np.count_nonzero(hit))
