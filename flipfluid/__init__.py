"""
flipfluid/ — 2D PIC Water Simulation Package
=============================================
Exports the main interfaces hosts use.

Renderers read: FluidSimulation.particles / .grid / snapshot()
Level loaders build: SpawnData (build_spawn) and SDFLayer
Front ends drive: FluidSimulation.run_frame(), toggle_pause(), step_once(), reset()
"""

import logging

from .config import SimulationConfig
from .grid import (FluidGrid, AIR_CELL, TERRAIN_CELL, STONE_CELL, WATER_CELL,
                   DRAIN_CELL)
from .particles import ParticleSet, DISABLED_POSITION
from .spatial_hash import SpatialHash
from .collider import SDFLayer, TerrainCollider
from .solver import solve_incompressibility, ORDER_SEQUENTIAL, ORDER_RED_BLACK
from .spawn import (SpawnData, build_spawn, build_cell_types, sample_mask,
                    TERRAIN_CHANNELS, WATER_CHANNELS)
from .simulation import FluidSimulation, SimState

__version__ = "0.1.0"

# Library stays quiet unless the host configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "SimulationConfig",
    "FluidGrid", "AIR_CELL", "TERRAIN_CELL", "STONE_CELL", "WATER_CELL", "DRAIN_CELL",
    "ParticleSet", "DISABLED_POSITION",
    "SpatialHash",
    "SDFLayer", "TerrainCollider",
    "solve_incompressibility", "ORDER_SEQUENTIAL", "ORDER_RED_BLACK",
    "SpawnData", "build_spawn", "build_cell_types", "sample_mask",
    "TERRAIN_CHANNELS", "WATER_CHANNELS",
    "FluidSimulation", "SimState",
]
