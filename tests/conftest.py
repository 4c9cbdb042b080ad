import numpy as np
import pytest

from flipfluid import FluidGrid, ParticleSet, SimulationConfig


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        help="Run long multi-frame simulation tests",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "slow: long multi-frame simulation runs",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def grid():
    """10x10 unit grid with the stone ring in place."""
    g = FluidGrid(10, 10, 1.0)
    g.set_boundary()
    return g


@pytest.fixture
def make_particles():
    def _make(positions, velocities=None):
        return ParticleSet(np.array(positions, dtype=np.float64),
                           None if velocities is None else np.array(velocities, dtype=np.float64))
    return _make


@pytest.fixture
def small_config():
    return SimulationConfig(
        cols=16,
        rows=12,
        num_particles=60,
        particle_radius=0.3,
        iterations_per_frame=2,
        incompressibility_iterations=20,
    )
