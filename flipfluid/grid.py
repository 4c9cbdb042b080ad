"""
grid.py — MAC (Marker-and-Cell) Staggered Grid
================================================
The Eulerian half of the simulation.

Layout on a single cell (index = row * cols + col):
  - Cell type and density live at the CELL CENTER
  - velocity[:, 0] (u) lives on the cell's LEFT face
  - velocity[:, 1] (v) lives on the cell's BOTTOM face

Everything is stored as flat NumPy arrays indexed by cell id so every
pass can borrow a slice without owning it. Reshape to (rows, cols)
when a vectorized neighbour lookup is needed.
"""

import numpy as np


# ── Cell types ────────────────────────────────────────────────────────────────
# Values match the level encoding: 0 air, 1 terrain, 2 stone wall, 3 water, 4 drain.
AIR_CELL     = 0
TERRAIN_CELL = 1
STONE_CELL   = 2
WATER_CELL   = 3
DRAIN_CELL   = 4

CELL_NAMES = {
    AIR_CELL: "air",
    TERRAIN_CELL: "terrain",
    STONE_CELL: "stone",
    WATER_CELL: "water",
    DRAIN_CELL: "drain",
}


def is_solid(cell_type):
    """True where a cell blocks flow (terrain or stone). Works on scalars and arrays."""
    return (cell_type == STONE_CELL) | (cell_type == TERRAIN_CELL)


class FluidGrid:
    """
    Fixed-resolution 2D MAC grid.
    This is the single source of truth for all per-cell state.
    """

    def __init__(self, cols: int, rows: int, cell_size: float = 1.0):
        """
        Args:
            cols      : Number of cells along X
            rows      : Number of cells along Y
            cell_size : World-space edge length of one cell
        """
        if cols < 3 or rows < 3:
            raise ValueError(f"Grid needs at least 3x3 cells, got {cols}x{rows}")
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")

        self.cols = int(cols)
        self.rows = int(rows)
        self.cell_size = float(cell_size)
        self.bounds_size = (self.cols * self.cell_size, self.rows * self.cell_size)
        self.total_cells = self.cols * self.rows
        assert self.cols * self.rows == self.total_cells

        # ── Per-cell arrays ────────────────────────────────────────────────
        self.cell_type = np.zeros(self.total_cells, dtype=np.int32)
        self.velocity  = np.zeros((self.total_cells, 2), dtype=np.float64)
        self.weight    = np.zeros((self.total_cells, 2), dtype=np.float64)
        self.density   = np.zeros(self.total_cells, dtype=np.float64)

    # ── Indexing helpers ──────────────────────────────────────────────────────

    def cell_index(self, col, row):
        """Flat index of (col, row). Accepts ints or integer arrays."""
        return row * self.cols + col

    def cell_coords(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Containing cell (col, row) of each world position, clamped into the grid.

        Args:
            positions : (N, 2) world positions

        Returns (cols, rows) integer arrays of length N.
        """
        col = np.clip(np.floor(positions[:, 0] / self.cell_size), 0, self.cols - 1).astype(np.int64)
        row = np.clip(np.floor(positions[:, 1] / self.cell_size), 0, self.rows - 1).astype(np.int64)
        return col, row

    def containing_cells(self, positions: np.ndarray) -> np.ndarray:
        """Flat index of the cell containing each world position (clamped)."""
        col, row = self.cell_coords(positions)
        return self.cell_index(col, row)

    # ── Cell type management ──────────────────────────────────────────────────

    def set_cell_types(self, cell_types: np.ndarray):
        """
        Load a cell-type layout. Accepts a flat array or a (rows, cols) array.
        The outer ring is always forced to STONE so fluid can't leave the box.
        """
        cell_types = np.asarray(cell_types, dtype=np.int32)
        if cell_types.size != self.total_cells:
            raise ValueError(
                f"Cell type layout has {cell_types.size} cells, grid has {self.total_cells}"
            )
        self.cell_type[:] = cell_types.reshape(-1)
        self.set_boundary()

    def set_boundary(self):
        """Force the outer ring of cells to STONE."""
        types = self.cell_type.reshape(self.rows, self.cols)
        types[0, :]  = STONE_CELL
        types[-1, :] = STONE_CELL
        types[:, 0]  = STONE_CELL
        types[:, -1] = STONE_CELL

    def count(self, cell_type: int) -> int:
        """Number of cells of a given type."""
        return int(np.count_nonzero(self.cell_type == cell_type))

    # ── Diagnostics ───────────────────────────────────────────────────────────

    def compute_divergence(self) -> np.ndarray:
        """
        Discrete divergence of every interior WATER cell:
            d = u(right) - u(here) + v(top) - v(here)

        Non-water and boundary cells report 0.
        Returns: (rows, cols) array.
        """
        u = self.velocity[:, 0].reshape(self.rows, self.cols)
        v = self.velocity[:, 1].reshape(self.rows, self.cols)
        water = (self.cell_type == WATER_CELL).reshape(self.rows, self.cols)

        div = np.zeros((self.rows, self.cols), dtype=np.float64)
        div[1:-1, 1:-1] = (
            u[1:-1, 2:] - u[1:-1, 1:-1] +
            v[2:, 1:-1] - v[1:-1, 1:-1]
        )
        div[~water] = 0.0
        return div

    def reset(self, cell_types: np.ndarray = None, velocities: np.ndarray = None):
        """Zero out transient fields and optionally reload types/velocities."""
        self.weight[:] = 0.0
        self.density[:] = 0.0
        if velocities is None:
            self.velocity[:] = 0.0
        else:
            self.velocity[:] = np.asarray(velocities, dtype=np.float64).reshape(self.total_cells, 2)
        if cell_types is not None:
            self.set_cell_types(cell_types)

    def __repr__(self):
        max_div = np.abs(self.compute_divergence()).max()
        max_vel = np.abs(self.velocity).max()
        cells = ", ".join(f"{name}={self.count(t)}" for t, name in CELL_NAMES.items())
        return (
            f"FluidGrid({self.cols}x{self.rows}, cell_size={self.cell_size})\n"
            f"  cells    : {cells}\n"
            f"  density  : max={self.density.max():.4f}, sum={self.density.sum():.2f}\n"
            f"  velocity : max_component={max_vel:.4f}\n"
            f"  divergence: max={max_div:.6f} (target: ~0)"
        )
