import json

import pytest

from flipfluid import SimulationConfig
from flipfluid.solver import ORDER_RED_BLACK


def test_defaults_are_valid():
    config = SimulationConfig().validate()
    assert config.bounds_size == (64.0, 48.0)
    assert config.total_cells == 64 * 48
    assert config.win_fraction == pytest.approx(2.0 / 3.0)


def test_from_dict_sections():
    config = SimulationConfig.from_dict({
        "grid": {"cols": 20, "rows": 10, "cell_size": 0.5},
        "particles": {"count": 300, "radius": 0.1},
        "physics": {"gravity": -3.0},
        "solver": {"iterations": 12, "over_relaxation": 1.5, "ordering": ORDER_RED_BLACK},
        "time": {"iterations_per_frame": 3},
        "win_fraction": 0.5,
    })
    assert (config.cols, config.rows, config.cell_size) == (20, 10, 0.5)
    assert config.bounds_size == (10.0, 5.0)
    assert config.num_particles == 300
    assert config.particle_radius == 0.1
    assert config.gravity == -3.0
    assert config.incompressibility_iterations == 12
    assert config.solver_ordering == ORDER_RED_BLACK
    assert config.iterations_per_frame == 3
    assert config.win_fraction == 0.5
    # untouched keys keep their defaults
    assert config.stiffness == 1.0
    assert config.time_scale == 1.0


@pytest.mark.parametrize("field,value", [
    ("cols", 2),
    ("cell_size", 0.0),
    ("num_particles", -1),
    ("particle_radius", 0.0),
    ("iterations_per_frame", 0),
    ("over_relaxation", 2.0),
    ("solver_ordering", "jacobi"),
    ("win_fraction", 0.0),
])
def test_validate_rejects(field, value):
    config = SimulationConfig(**{field: value})
    with pytest.raises(ValueError):
        config.validate()


def test_from_json(tmp_path):
    path = tmp_path / "level.json"
    path.write_text(json.dumps({"grid": {"cols": 12, "rows": 9}}))
    config = SimulationConfig.from_json(str(path))
    assert (config.cols, config.rows) == (12, 9)


def test_to_dict_round_trips_fields():
    data = SimulationConfig(cols=30).to_dict()
    assert data["cols"] == 30
    assert SimulationConfig(**data) == SimulationConfig(cols=30)
