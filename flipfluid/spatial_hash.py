"""
spatial_hash.py — Uniform Bucket Partition + Particle Push-Apart
=================================================================
Particles are binned into square buckets of side `spacing_factor * r`
(2.2r by default). Any pair closer than 2r then lives in the same or
an adjacent bucket, so a 3x3 bucket scan finds every overlap.

Layout (counting sort, rebuilt every substep):
  bucket_count[c]    : active particles in bucket c
  bucket_start[c]    : exclusive prefix sum, length num_buckets + 1
  particle_index[k]  : particle ids grouped by bucket, so bucket c owns
                       particle_index[bucket_start[c] : bucket_start[c+1]]

Disabled particles are never binned.

References:
-----------
Ihmsen et al. (2011) -- Parallel Neighbor-Search for SPH
"""

import math

import numpy as np


DEFAULT_SPACING_FACTOR = 2.2
DEFAULT_PUSH_ITERATIONS = 2


class SpatialHash:
    """
    Dense spatial partition over the simulation bounds.

    The hash only stores indices; positions are passed in on every call
    and never kept between substeps.
    """

    def __init__(self, bounds_size: tuple, particle_radius: float,
                 spacing_factor: float = DEFAULT_SPACING_FACTOR):
        """
        Args:
            bounds_size     : (width, height) of the world in world units
            particle_radius : Particle radius r
            spacing_factor  : Bucket size as a multiple of r
        """
        if particle_radius <= 0:
            raise ValueError(f"particle_radius must be positive, got {particle_radius}")
        if spacing_factor < 2.0:
            raise ValueError(f"spacing_factor must be >= 2 to cover a 2r overlap, got {spacing_factor}")

        self.particle_radius = float(particle_radius)
        self.spacing = spacing_factor * self.particle_radius
        self.size_x = max(1, math.ceil(bounds_size[0] / self.spacing))
        self.size_y = max(1, math.ceil(bounds_size[1] / self.spacing))
        self.num_buckets = self.size_x * self.size_y

        self.bucket_count = np.zeros(self.num_buckets, dtype=np.int64)
        self.bucket_start = np.zeros(self.num_buckets + 1, dtype=np.int64)
        self.particle_index = np.zeros(0, dtype=np.int64)

        # Encounters of exactly coincident particles during the last push_apart.
        # These pairs have no separating direction and are left overlapping.
        self.coincident_pairs = 0

    # ── Bucket coordinates ────────────────────────────────────────────────────

    def bucket_coords(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Bucket (x, y) for each position, clamped into the partition."""
        bx = np.clip(np.floor(positions[:, 0] / self.spacing), 0, self.size_x - 1).astype(np.int64)
        by = np.clip(np.floor(positions[:, 1] / self.spacing), 0, self.size_y - 1).astype(np.int64)
        return bx, by

    def _bucket_of(self, x: float, y: float) -> tuple[int, int]:
        bx = min(max(math.floor(x / self.spacing), 0), self.size_x - 1)
        by = min(max(math.floor(y / self.spacing), 0), self.size_y - 1)
        return bx, by

    # ── Build ─────────────────────────────────────────────────────────────────

    def build(self, positions: np.ndarray, active: np.ndarray):
        """
        Counting-sort active particles into buckets.

        Args:
            positions : (N, 2) world positions
            active    : (N,) boolean mask; False entries are left out
        """
        ids = np.flatnonzero(active)
        bx, by = self.bucket_coords(positions[ids])
        buckets = by * self.size_x + bx

        # 1-2. zero and count
        self.bucket_count[:] = 0
        np.add.at(self.bucket_count, buckets, 1)

        # 3. exclusive prefix sum
        self.bucket_start[0] = 0
        np.cumsum(self.bucket_count, out=self.bucket_start[1:])

        # 4. group ids by bucket (stable counting-sort order)
        order = np.argsort(buckets, kind="stable")
        self.particle_index = ids[order]

    def bucket_members(self, bucket: int) -> np.ndarray:
        """Particle ids stored in a flat bucket index."""
        return self.particle_index[self.bucket_start[bucket]:self.bucket_start[bucket + 1]]

    # ── Queries ───────────────────────────────────────────────────────────────

    def query(self, positions: np.ndarray, point: tuple, radius: float) -> np.ndarray:
        """
        Ids of binned particles within `radius` of `point`.
        Only the buckets overlapping the query disc are scanned.
        """
        reach = max(1, math.ceil(radius / self.spacing))
        cx, cy = self._bucket_of(point[0], point[1])
        x0, x1 = max(cx - reach, 0), min(cx + reach, self.size_x - 1)
        y0, y1 = max(cy - reach, 0), min(cy + reach, self.size_y - 1)

        chunks = []
        for y in range(y0, y1 + 1):
            first = self.bucket_start[y * self.size_x + x0]
            last = self.bucket_start[y * self.size_x + x1 + 1]
            chunks.append(self.particle_index[first:last])
        if not chunks:
            return np.zeros(0, dtype=np.int64)

        candidates = np.concatenate(chunks)
        diff = positions[candidates] - np.asarray(point, dtype=np.float64)
        dist2 = np.einsum("ij,ij->i", diff, diff)
        return np.sort(candidates[dist2 < radius * radius])

    # ── Push-apart ────────────────────────────────────────────────────────────

    def push_apart(self, positions: np.ndarray, active: np.ndarray,
                   iterations: int = DEFAULT_PUSH_ITERATIONS) -> int:
        """
        Separate overlapping particles so no pair is closer than 2r.

        Each overlapping pair is moved apart symmetrically by (2r - d) / 2,
        restoring the minimum distance exactly. Positions are updated in
        place and later pairs see earlier corrections (Gauss-Seidel style).

        Args:
            positions  : (N, 2) positions, modified in place
            active     : (N,) mask of particles taking part
            iterations : Full passes over all particles

        Returns the number of pair corrections applied.
        """
        self.build(positions, active)

        min_dist = 2.0 * self.particle_radius
        min_dist2 = min_dist * min_dist
        starts = self.bucket_start.tolist()
        index = self.particle_index.tolist()
        ids = np.flatnonzero(active).tolist()

        corrections = 0
        self.coincident_pairs = 0

        for _ in range(iterations):
            for i in ids:
                px, py = positions[i, 0], positions[i, 1]
                bx, by = self._bucket_of(px, py)
                x0, x1 = max(bx - 1, 0), min(bx + 1, self.size_x - 1)
                y0, y1 = max(by - 1, 0), min(by + 1, self.size_y - 1)

                for x in range(x0, x1 + 1):
                    for y in range(y0, y1 + 1):
                        bucket = y * self.size_x + x
                        for k in range(starts[bucket], starts[bucket + 1]):
                            j = index[k]
                            if j == i:
                                continue

                            dx = positions[j, 0] - px
                            dy = positions[j, 1] - py
                            d2 = dx * dx + dy * dy
                            if d2 >= min_dist2:
                                continue
                            if d2 == 0.0:
                                self.coincident_pairs += 1
                                continue

                            d = math.sqrt(d2)
                            s = (min_dist - d) / 2.0 / d
                            positions[i, 0] -= dx * s
                            positions[i, 1] -= dy * s
                            positions[j, 0] += dx * s
                            positions[j, 1] += dy * s
                            px, py = positions[i, 0], positions[i, 1]
                            corrections += 1

        return corrections
