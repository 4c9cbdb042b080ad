import numpy as np
import pytest

from flipfluid.boundaries import absorb_drained, constrain_to_bounds
from flipfluid.forces import apply_impulse, integrate
from flipfluid.grid import DRAIN_CELL
from flipfluid.particles import DISABLED_POSITION, ParticleSet


def test_particle_set_validation():
    with pytest.raises(ValueError):
        ParticleSet(np.zeros((3, 3)))
    with pytest.raises(ValueError):
        ParticleSet(np.zeros((3, 2)), np.zeros((2, 2)))


def test_particle_set_copies_inputs():
    pos = np.ones((2, 2))
    p = ParticleSet(pos)
    pos[:] = 5.0
    assert np.all(p.positions == 1.0)
    assert np.all(p.velocities == 0.0)


def test_disable_parks_particles(make_particles):
    p = make_particles([[2.0, 2.0], [3.0, 3.0]], [[1.0, 1.0], [1.0, 1.0]])
    p.disable(np.array([True, False]))
    assert tuple(p.positions[0]) == DISABLED_POSITION
    assert np.all(p.velocities[0] == 0.0)
    assert p.active_mask().tolist() == [False, True]
    assert p.active_count() == 1
    assert p.count == 2


def test_sentinel_position_starts_disabled(make_particles):
    p = make_particles([[-1.0, -1.0], [2.0, 2.0]])
    assert p.disabled.tolist() == [True, False]
    with pytest.raises(ValueError):
        ParticleSet(np.zeros((2, 2)), disabled=np.zeros(3, dtype=bool))


def test_live_particle_past_left_edge_stays_active(make_particles):
    p = make_particles([[0.05, 5.0]], [[-10.0, 0.0]])
    integrate(p, 0.0, 0.01)
    assert p.positions[0, 0] < 0.0
    assert p.active_mask().tolist() == [True]
    assert p.active_count() == 1


def test_load_rederives_flags(make_particles):
    p = make_particles([[2.0, 2.0], [3.0, 3.0]])
    p.disable(np.array([True, False]))
    p.load(np.array([[4.0, 4.0], [-1.0, -1.0]]), np.zeros((2, 2)))
    assert p.disabled.tolist() == [False, True]
    copy = p.copy()
    copy.disable(np.array([True, False]))
    assert p.disabled.tolist() == [False, True]


def test_integrate_gravity(make_particles):
    p = make_particles([[5.0, 5.0]], [[0.0, -1.0]])
    integrate(p, -9.8, 0.01)
    assert p.velocities[0, 1] == pytest.approx(-1.098)
    assert p.positions[0, 1] == pytest.approx(4.98902)
    assert p.positions[0, 0] == pytest.approx(5.0)


def test_integrate_skips_disabled(make_particles):
    p = make_particles([[-1.0, -1.0]])
    integrate(p, -9.8, 0.1)
    assert tuple(p.positions[0]) == DISABLED_POSITION
    assert p.velocities[0, 1] == 0.0


def test_constrain_to_bounds(grid, make_particles):
    p = make_particles([[0.5, 5.0], [9.5, 9.5], [5.0, 5.0]],
                       [[-2.0, 1.0], [1.0, 1.0], [1.0, 1.0]])
    clamps = constrain_to_bounds(grid, p, 0.3)

    assert clamps == 3
    assert p.positions[0].tolist() == pytest.approx([1.3, 5.0])
    assert p.velocities[0].tolist() == [0.0, 1.0]
    assert p.positions[1].tolist() == pytest.approx([8.7, 8.7])
    assert p.velocities[1].tolist() == [0.0, 0.0]
    assert p.velocities[2].tolist() == [1.0, 1.0]


def test_constrain_brings_back_particle_past_left_edge(grid, make_particles):
    p = make_particles([[0.05, 5.0]], [[-10.0, 0.0]])
    integrate(p, 0.0, 0.01)
    assert constrain_to_bounds(grid, p, 0.3) == 1
    assert p.positions[0].tolist() == pytest.approx([1.3, 5.0])
    assert p.velocities[0].tolist() == [0.0, 0.0]


def test_constrain_ignores_disabled(grid, make_particles):
    p = make_particles([[-1.0, -1.0]])
    assert constrain_to_bounds(grid, p, 0.3) == 0
    assert tuple(p.positions[0]) == DISABLED_POSITION


def test_drain_absorbs_once(grid, make_particles):
    grid.cell_type[55] = DRAIN_CELL
    p = make_particles([[5.5, 5.5], [3.5, 3.5]], [[1.0, 0.0], [1.0, 0.0]])

    assert absorb_drained(grid, p) == 1
    assert tuple(p.positions[0]) == DISABLED_POSITION
    assert p.active_count() == 1
    assert absorb_drained(grid, p) == 0


def test_impulse_pulls_toward_center(make_particles):
    p = make_particles([[6.0, 5.0], [9.0, 5.0]])
    affected = apply_impulse(p, (5.0, 5.0), radius=2.0, strength=40.0, dt=0.1)
    assert affected == 1
    assert p.velocities[0].tolist() == pytest.approx([-2.0, 0.0])
    assert p.velocities[1].tolist() == [0.0, 0.0]


def test_impulse_negative_strength_pushes(make_particles):
    p = make_particles([[6.0, 5.0]])
    apply_impulse(p, (5.0, 5.0), radius=2.0, strength=-40.0, dt=0.1)
    assert p.velocities[0, 0] > 0.0


def test_impulse_rejects_bad_radius(make_particles):
    p = make_particles([[6.0, 5.0]])
    with pytest.raises(ValueError):
        apply_impulse(p, (5.0, 5.0), radius=0.0)
