"""
spawn.py — Level Layout and Initial Particles
==============================================
Turns level masks into the initial simulation state:

  terrain mask → TERRAIN cells
  water mask   → WATER cells, filled with particles
  drain mask   → DRAIN cells (particles reaching them score)
  outer ring   → always STONE

Masks are plain 2D arrays with row 0 at the bottom of the world. Any
resolution works; `sample_mask` picks the pixel under each cell center.
Reading the masks from image files is up to the caller.

The SpawnData returned here is also the snapshot `reset()` goes back to.
"""

import logging
from dataclasses import dataclass

import numpy as np
from .config import SimulationConfig
from .grid import AIR_CELL, TERRAIN_CELL, STONE_CELL, WATER_CELL, DRAIN_CELL

logger = logging.getLogger(__name__)


# Pixels above this value count as "filled"
MASK_THRESHOLD = 0.01

# Channels of an H x W x C level image that mark a cell as filled:
# terrain is any non-black colour, water any non-transparent pixel
TERRAIN_CHANNELS = (0, 1, 2)
WATER_CHANNELS = (3,)

# Side (in cells) of the square particles are scattered over when the
# level has no water mask
DEFAULT_SPREAD = 20.0


@dataclass
class SpawnData:
    """Initial state of a level. Arrays are flat / (N, 2), never mutated by the sim."""

    cell_types: np.ndarray       # (total_cells,) int32
    cell_velocities: np.ndarray  # (total_cells, 2)
    positions: np.ndarray        # (num_particles, 2)
    velocities: np.ndarray       # (num_particles, 2)

    @property
    def num_particles(self) -> int:
        return len(self.positions)


def sample_mask(image: np.ndarray, cols: int, rows: int,
                threshold: float = MASK_THRESHOLD,
                channels: tuple = TERRAIN_CHANNELS) -> np.ndarray:
    """
    Nearest-pixel sample of a 2D (or H x W x C) array at every cell center.

    A cell is set when any of the selected `channels` of its pixel exceeds
    `threshold`. Use TERRAIN_CHANNELS (RGB) for terrain images and
    WATER_CHANNELS (alpha) for water images. A 2D array has a single
    channel and ignores `channels`.

    Returns a (rows, cols) boolean mask.
    """
    image = np.asarray(image, dtype=np.float64)
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    elif image.ndim == 3:
        channels = list(channels)
        if not channels or max(channels) >= image.shape[2] or min(channels) < 0:
            raise ValueError(f"Channels {channels} not available in image of shape {image.shape}")
        image = image[:, :, channels]
    else:
        raise ValueError(f"Mask image must be 2D or 3D, got shape {image.shape}")

    height, width = image.shape[:2]
    px = np.clip(np.floor((np.arange(cols) + 0.5) / cols * width), 0, width - 1).astype(np.int64)
    py = np.clip(np.floor((np.arange(rows) + 0.5) / rows * height), 0, height - 1).astype(np.int64)

    pixels = image[py[:, np.newaxis], px[np.newaxis, :]]   # (rows, cols, C)
    return np.any(pixels > threshold, axis=2)


def _check_mask(mask, cols: int, rows: int, name: str) -> np.ndarray:
    mask = np.asarray(mask, dtype=bool)
    if mask.shape != (rows, cols):
        raise ValueError(f"{name} mask has shape {mask.shape}, expected {(rows, cols)}")
    return mask


def build_cell_types(cols: int, rows: int, terrain_mask=None, water_mask=None,
                     drain_mask=None) -> np.ndarray:
    """
    Cell layout for a level. Later masks win where they overlap
    (terrain, then water, then drains); the outer ring is STONE regardless.

    Returns a flat (rows * cols,) int32 array.
    """
    types = np.full((rows, cols), AIR_CELL, dtype=np.int32)
    if terrain_mask is not None:
        types[_check_mask(terrain_mask, cols, rows, "terrain")] = TERRAIN_CELL
    if water_mask is not None:
        types[_check_mask(water_mask, cols, rows, "water")] = WATER_CELL
    if drain_mask is not None:
        types[_check_mask(drain_mask, cols, rows, "drain")] = DRAIN_CELL

    types[0, :] = STONE_CELL
    types[-1, :] = STONE_CELL
    types[:, 0] = STONE_CELL
    types[:, -1] = STONE_CELL
    return types.reshape(-1)


def build_spawn(config: SimulationConfig, terrain_mask=None, water_mask=None,
                drain_mask=None, seed: int = 42, spread: float = DEFAULT_SPREAD) -> SpawnData:
    """
    Build the initial level state.

    Particles are shared out evenly over the water cells: every cell gets
    num_particles // n_cells, and the first (num_particles % n_cells) cells
    get one extra. Each particle lands at a uniformly random spot inside its
    cell. Without a water mask they're scattered over a `spread`-cell
    square around the grid center instead.

    Args:
        config : Grid size and particle count come from here
        seed   : RNG seed, so a level always spawns the same way
        spread : Side of the fallback spawn square, in cells
    """
    cols, rows, h = config.cols, config.rows, config.cell_size
    n = config.num_particles
    rng = np.random.default_rng(seed)

    cell_types = build_cell_types(cols, rows, terrain_mask, water_mask, drain_mask)
    water_cells = np.flatnonzero(cell_types == WATER_CELL)

    if water_mask is not None:
        if n > 0 and len(water_cells) == 0:
            raise ValueError("Water mask has no usable cells inside the walls")
        per_cell, extras = divmod(n, len(water_cells)) if len(water_cells) else (0, 0)
        counts = np.full(len(water_cells), per_cell, dtype=np.int64)
        counts[:extras] += 1

        owners = np.repeat(water_cells, counts)
        corner = np.stack([owners % cols, owners // cols], axis=1).astype(np.float64)
        positions = (corner + rng.random((n, 2))) * h
        logger.debug("Spawned %d particles over %d water cells", n, len(water_cells))
    else:
        center = np.array([cols, rows], dtype=np.float64) / 2.0
        # Keep the square inside the stone ring on small grids
        side = np.minimum(spread, np.array([cols - 2, rows - 2], dtype=np.float64))
        positions = (center + side * (rng.random((n, 2)) - 0.5)) * h
        logger.debug("No water mask; spawned %d particles around the grid center", n)

    return SpawnData(
        cell_types=cell_types,
        cell_velocities=np.zeros((cols * rows, 2), dtype=np.float64),
        positions=positions,
        velocities=np.zeros((n, 2), dtype=np.float64),
    )
