import numpy as np
import pytest

from flipfluid.grid import STONE_CELL, TERRAIN_CELL, WATER_CELL
from flipfluid.solver import (ORDER_RED_BLACK, ORDER_SEQUENTIAL,
                              solve_incompressibility)


def _water_block(grid, cols, rows):
    types = grid.cell_type.reshape(grid.rows, grid.cols)
    types[rows[0]:rows[1], cols[0]:cols[1]] = WATER_CELL


def test_single_cell_exact_with_unit_relaxation(grid):
    grid.cell_type[55] = WATER_CELL
    grid.velocity[56, 0] = 1.0

    metrics = solve_incompressibility(grid, iterations=1, over_relaxation=1.0)

    assert metrics["divergence_before_max"] == pytest.approx(1.0)
    assert metrics["divergence_after_max"] == pytest.approx(0.0, abs=1e-12)
    assert grid.velocity[55, 0] == pytest.approx(0.25)
    assert grid.velocity[56, 0] == pytest.approx(0.75)
    assert grid.velocity[55, 1] == pytest.approx(0.25)
    assert grid.velocity[65, 1] == pytest.approx(-0.25)


def test_over_relaxation_still_shrinks_divergence(grid):
    grid.cell_type[55] = WATER_CELL
    grid.velocity[56, 0] = 1.0

    metrics = solve_incompressibility(grid, iterations=10, over_relaxation=1.9)

    # Each sweep multiplies the lone cell's divergence by (1 - 1.9)
    assert metrics["divergence_after_max"] == pytest.approx(0.9 ** 10)
    assert metrics["divergence_after_max"] < metrics["divergence_before_max"]


@pytest.mark.parametrize("ordering", [ORDER_SEQUENTIAL, ORDER_RED_BLACK])
def test_block_converges(grid, ordering):
    _water_block(grid, (2, 7), (1, 5))
    rng = np.random.default_rng(0)
    grid.velocity[:] = rng.uniform(-1.0, 1.0, grid.velocity.shape)

    metrics = solve_incompressibility(grid, iterations=200, over_relaxation=1.0,
                                      ordering=ordering)

    assert metrics["ordering"] == ordering
    assert metrics["cells"] == 20
    assert metrics["divergence_after_max"] < 0.01 * metrics["divergence_before_max"]


@pytest.mark.parametrize("omega", [1.0, 1.5, 1.9])
def test_each_sweep_reduces_divergence(grid, omega):
    # Monotone in the L2 norm; the max-norm can rise briefly near omega = 2
    _water_block(grid, (2, 7), (1, 5))
    rng = np.random.default_rng(0)
    grid.velocity[:] = rng.uniform(-1.0, 1.0, grid.velocity.shape)

    previous = np.linalg.norm(grid.compute_divergence())
    for _ in range(30):
        solve_incompressibility(grid, iterations=1, over_relaxation=omega)
        current = np.linalg.norm(grid.compute_divergence())
        assert current <= previous + 1e-12
        previous = current


def test_solid_faces_are_never_written(grid):
    # (1, 5) sits against the stone wall on its left
    grid.cell_type[51] = WATER_CELL
    grid.velocity[51, 0] = 0.5
    grid.velocity[52, 0] = 2.0

    solve_incompressibility(grid, iterations=20, over_relaxation=1.0)

    assert grid.velocity[51, 0] == 0.5
    div = grid.compute_divergence()
    assert abs(div[5, 1]) < 1e-3


def test_enclosed_cell_is_skipped(grid):
    grid.cell_type[11] = WATER_CELL          # (1, 1), stone left and below
    grid.cell_type[12] = TERRAIN_CELL
    grid.cell_type[21] = TERRAIN_CELL
    grid.velocity[11] = (0.3, 0.3)

    metrics = solve_incompressibility(grid, iterations=5)

    assert metrics["cells"] == 0
    assert grid.velocity[11].tolist() == [0.3, 0.3]


def test_density_drift_pushes_fluid_out(grid):
    grid.cell_type[55] = WATER_CELL
    grid.density[55] = 3.0

    solve_incompressibility(grid, rest_density=1.0, iterations=1,
                            over_relaxation=1.0, stiffness=1.0)

    assert grid.velocity[55, 0] == pytest.approx(-0.5)
    assert grid.velocity[56, 0] == pytest.approx(0.5)
    assert grid.velocity[55, 1] == pytest.approx(-0.5)
    assert grid.velocity[65, 1] == pytest.approx(0.5)


def test_zero_rest_density_disables_drift(grid):
    grid.cell_type[55] = WATER_CELL
    grid.density[55] = 3.0
    solve_incompressibility(grid, rest_density=0.0, iterations=5)
    assert not grid.velocity.any()


def test_unknown_ordering(grid):
    with pytest.raises(ValueError):
        solve_incompressibility(grid, ordering="jacobi")


def test_boundary_cells_are_not_solved(grid):
    grid.cell_type[:] = WATER_CELL
    grid.cell_type[0] = STONE_CELL
    metrics = solve_incompressibility(grid, iterations=1)
    assert metrics["cells"] == 64
