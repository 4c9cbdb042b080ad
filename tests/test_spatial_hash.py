import numpy as np
import pytest

from flipfluid.spatial_hash import SpatialHash


def _overlapping_pairs(positions, radius):
    diff = positions[:, np.newaxis, :] - positions[np.newaxis, :, :]
    dist = np.linalg.norm(diff, axis=2)
    i, j = np.triu_indices(len(positions), k=1)
    return int(np.count_nonzero(dist[i, j] < 2.0 * radius - 1e-9))


def test_partition_size():
    h = SpatialHash((10.0, 10.0), 0.5)
    assert h.spacing == pytest.approx(1.1)
    assert h.size_x == 10
    assert h.size_y == 10
    assert len(h.bucket_start) == h.num_buckets + 1


@pytest.mark.parametrize("radius,factor", [(0.0, 2.2), (-1.0, 2.2), (0.5, 1.5)])
def test_rejects_bad_parameters(radius, factor):
    with pytest.raises(ValueError):
        SpatialHash((10.0, 10.0), radius, factor)


def test_build_counting_sort():
    h = SpatialHash((10.0, 10.0), 0.5)
    pos = np.array([[0.5, 0.5], [5.0, 5.0], [0.6, 0.4], [-1.0, -1.0], [5.2, 5.3]])
    active = pos[:, 0] >= 0.0
    h.build(pos, active)

    assert h.bucket_start[-1] == 4
    assert sorted(h.particle_index.tolist()) == [0, 1, 2, 4]
    assert h.bucket_count.sum() == 4
    assert sorted(h.bucket_members(0).tolist()) == [0, 2]

    bx, by = h.bucket_coords(pos[[1]])
    bucket = int(by[0] * h.size_x + bx[0])
    assert sorted(h.bucket_members(bucket).tolist()) == [1, 4]


def test_build_clamps_out_of_range_positions():
    h = SpatialHash((10.0, 10.0), 0.5)
    pos = np.array([[50.0, 50.0]])
    h.build(pos, np.array([True]))
    assert h.bucket_members(h.num_buckets - 1).tolist() == [0]


def test_push_apart_restores_minimum_distance():
    h = SpatialHash((10.0, 10.0), 0.3)
    pos = np.array([[5.0, 5.0], [5.0, 5.1]])
    corrections = h.push_apart(pos, np.array([True, True]))

    assert corrections >= 1
    assert pos[0, 1] == pytest.approx(4.75)
    assert pos[1, 1] == pytest.approx(5.35)
    assert pos[:, 0].tolist() == pytest.approx([5.0, 5.0])
    assert np.linalg.norm(pos[1] - pos[0]) >= 0.6 - 1e-9
    assert pos[:, 1].mean() == pytest.approx(5.05)


def test_push_apart_leaves_coincident_pairs():
    h = SpatialHash((10.0, 10.0), 0.3)
    pos = np.array([[5.0, 5.0], [5.0, 5.0]])
    corrections = h.push_apart(pos, np.array([True, True]))

    assert corrections == 0
    assert h.coincident_pairs > 0
    assert pos.tolist() == [[5.0, 5.0], [5.0, 5.0]]


def test_push_apart_ignores_distant_and_disabled():
    h = SpatialHash((10.0, 10.0), 0.3)
    pos = np.array([[2.0, 2.0], [7.0, 7.0], [-1.0, -1.0]])
    before = pos.copy()
    corrections = h.push_apart(pos, pos[:, 0] >= 0.0)
    assert corrections == 0
    assert np.array_equal(pos, before)


def test_push_apart_reduces_overlap_in_a_cloud():
    rng = np.random.default_rng(3)
    radius = 0.2
    pos = 3.5 + 3.0 * rng.random((50, 2))
    before = _overlapping_pairs(pos, radius)

    h = SpatialHash((10.0, 10.0), radius)
    h.push_apart(pos, np.ones(50, dtype=bool))

    assert before > 0
    assert _overlapping_pairs(pos, radius) < before


def test_query_returns_neighbours():
    h = SpatialHash((10.0, 10.0), 0.5)
    pos = np.array([[5.0, 5.0], [5.5, 5.0], [7.0, 5.0], [5.0, 4.2]])
    h.build(pos, np.ones(4, dtype=bool))
    assert h.query(pos, (5.0, 5.0), 1.0).tolist() == [0, 1, 3]
    assert h.query(pos, (9.5, 9.5), 0.5).tolist() == []
