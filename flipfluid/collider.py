"""
collider.py — Signed-Distance-Field Terrain Collision
======================================================
Terrain is described by a signed distance field (SDF) sampled on an
image-like 2D array:

  distances[py, px] = signed world-space distance to the terrain surface
                      (negative inside terrain, positive in open space)

Row 0 is the bottom of the world (y = 0), column 0 the left edge.

Per particle, when the sampled distance is within one particle radius:
  1. estimate the surface normal n from forward differences of the SDF
  2. if the particle moves into the surface (v · n < 0), remove that
     component so it slides along the tangent
  3. push the particle out along n by (r - distance)

Two layers are supported: a static one built once from the level and a
dynamic one the host may edit in place between substeps (digging).
"""

import numpy as np
from .particles import ParticleSet


class SDFLayer:
    """
    One signed distance field covering the whole simulation bounds.

    The distances array is held by reference: edits made by the host are
    picked up on the next sample without rebuilding anything.
    """

    def __init__(self, distances: np.ndarray, bounds_size: tuple):
        """
        Args:
            distances   : (height, width) signed distances in world units
            bounds_size : (width, height) of the world covered by the field
        """
        distances = np.asarray(distances)
        if distances.ndim != 2 or min(distances.shape) < 2:
            raise ValueError(f"SDF must be a 2D array of at least 2x2 pixels, got {distances.shape}")
        if bounds_size[0] <= 0 or bounds_size[1] <= 0:
            raise ValueError(f"bounds_size must be positive, got {bounds_size}")

        self.distances = distances
        self.bounds_size = (float(bounds_size[0]), float(bounds_size[1]))

    @property
    def height(self) -> int:
        return self.distances.shape[0]

    @property
    def width(self) -> int:
        return self.distances.shape[1]

    @classmethod
    def from_pixel_distances(cls, pixels: np.ndarray, bounds_size: tuple) -> "SDFLayer":
        """Build a layer from distances measured in pixels (e.g. a baked SDF image)."""
        pixels = np.asarray(pixels, dtype=np.float64)
        world_per_pixel = bounds_size[0] / pixels.shape[1]
        return cls(pixels * world_per_pixel, bounds_size)

    @classmethod
    def from_inside_outside(cls, inside: np.ndarray, outside: np.ndarray,
                            bounds_size: tuple, in_pixels: bool = True) -> "SDFLayer":
        """
        Combine unsigned inside/outside distance maps into one signed field.

        Where the inside distance is the smaller one the pixel is in open
        space and keeps +outside; otherwise it is inside terrain and gets -inside.
        """
        inside = np.asarray(inside, dtype=np.float64)
        outside = np.asarray(outside, dtype=np.float64)
        if inside.shape != outside.shape:
            raise ValueError(f"inside {inside.shape} and outside {outside.shape} maps differ in shape")

        signed = np.where(inside <= outside, outside, -inside)
        if in_pixels:
            return cls.from_pixel_distances(signed, bounds_size)
        return cls(signed, bounds_size)

    # ── Sampling ──────────────────────────────────────────────────────────────

    def pixel_coords(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Nearest pixel (px, py) under each world position, clamped into the image."""
        px = np.floor(positions[:, 0] / self.bounds_size[0] * self.width)
        py = np.floor(positions[:, 1] / self.bounds_size[1] * self.height)
        px = np.clip(px, 0, self.width - 1).astype(np.int64)
        py = np.clip(py, 0, self.height - 1).astype(np.int64)
        return px, py

    def sample(self, positions: np.ndarray) -> np.ndarray:
        """Signed distance at each position (nearest pixel, no interpolation)."""
        px, py = self.pixel_coords(positions)
        return self.distances[py, px].astype(np.float64)

    def normals(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Unit SDF gradient at each position from forward differences.

        Returns:
            normals : (N, 2) unit vectors (zeros where undefined)
            valid   : (N,) False where the gradient has zero length
        """
        px, py = self.pixel_coords(positions)
        px1 = np.minimum(px + 1, self.width - 1)
        py1 = np.minimum(py + 1, self.height - 1)

        here = self.distances[py, px].astype(np.float64)
        grad = np.stack([
            self.distances[py, px1] - here,
            self.distances[py1, px] - here,
        ], axis=1)

        length = np.linalg.norm(grad, axis=1)
        valid = length > 0.0
        normals = np.zeros_like(grad)
        normals[valid] = grad[valid] / length[valid, np.newaxis]
        return normals, valid


def resolve_sdf_collisions(layer: SDFLayer, particles: ParticleSet, radius: float) -> int:
    """
    Push active particles out of one SDF layer and kill inward velocity.

    Particles whose gradient is undefined (flat field) are left alone.

    Returns the number of particles corrected.
    """
    idx = np.flatnonzero(particles.active_mask())
    if len(idx) == 0:
        return 0

    pos = particles.positions[idx]
    dist = layer.sample(pos)
    near = dist <= radius
    if not np.any(near):
        return 0

    idx, pos, dist = idx[near], pos[near], dist[near]
    normals, valid = layer.normals(pos)
    idx, pos, dist, normals = idx[valid], pos[valid], dist[valid], normals[valid]

    # Remove the velocity component pointing into the surface
    vel = particles.velocities[idx]
    along = np.einsum("ij,ij->i", vel, normals)
    inward = along < 0.0
    vel[inward] -= along[inward, np.newaxis] * normals[inward]
    particles.velocities[idx] = vel

    # Restore one radius of clearance
    particles.positions[idx] = pos + normals * (radius - dist)[:, np.newaxis]
    return len(idx)


class TerrainCollider:
    """
    Dynamic + static terrain layers applied one after the other.
    Either layer may be None.
    """

    def __init__(self, particle_radius: float, static_layer: SDFLayer = None,
                 dynamic_layer: SDFLayer = None):
        self.particle_radius = particle_radius
        self.static_layer = static_layer
        self.dynamic_layer = dynamic_layer

    @property
    def has_layers(self) -> bool:
        return self.static_layer is not None or self.dynamic_layer is not None

    def collide(self, particles: ParticleSet) -> int:
        """
        Resolve collisions against the dynamic layer, then the static layer.
        Returns the total number of particle corrections.
        """
        contacts = 0
        for layer in (self.dynamic_layer, self.static_layer):
            if layer is not None:
                contacts += resolve_sdf_collisions(layer, particles, self.particle_radius)
        return contacts
