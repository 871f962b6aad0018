import numpy as np
import pytest

from vecshard.kmeans import (
    LloydsResult,
    kmeanspp_selecting_pivots,
    lloyds_iter,
    run_lloyds,
    selecting_pivots,
)


def _two_blobs(seed=0):
    rng = np.random.default_rng(seed)
    a = rng.normal(0.0, 0.1, size=(20, 3)) + np.array([0.0, 0.0, 0.0])
    b = rng.normal(0.0, 0.1, size=(20, 3)) + np.array([10.0, 10.0, 10.0])
    return np.vstack([a, b]).astype(np.float32)


def test_lloyds_iter_moves_centers_to_cluster_means():
    data = _two_blobs()
    centers = np.array([[1.0, 1.0, 1.0], [9.0, 9.0, 9.0]], dtype=np.float32)
    result = lloyds_iter(data, centers)
    assert isinstance(result, LloydsResult)
    np.testing.assert_allclose(result.centers[0], data[:20].mean(axis=0), atol=1e-5)
    np.testing.assert_allclose(result.centers[1], data[20:].mean(axis=0), atol=1e-5)
    assert sorted(result.closest_docs[0]) == list(range(20))
    assert sorted(result.closest_docs[1]) == list(range(20, 40))


def test_lloyds_iter_residual_is_sum_of_squared_distances():
    data = _two_blobs(1)
    centers = np.array([[0.5, 0.5, 0.5], [9.5, 9.5, 9.5]], dtype=np.float32)
    result = lloyds_iter(data, centers)
    assigned = result.centers[result.closest_center.astype(int)]
    expected = float(((data - assigned) ** 2).sum())
    assert result.residual == pytest.approx(expected, rel=1e-4)


def test_lloyds_iter_empty_cluster_becomes_zero():
    data = np.array([[1.0, 2.0], [1.0, 2.0]], dtype=np.float32)
    centers = np.array([[1.0, 2.0], [100.0, 100.0]], dtype=np.float32)
    result = lloyds_iter(data, centers)
    np.testing.assert_array_equal(result.centers[1], [0.0, 0.0])
    assert result.closest_docs[1] == []
    assert result.residual == 0.0


def test_lloyds_iter_does_not_modify_input_centers():
    data = _two_blobs()
    centers = np.array([[1.0, 1.0, 1.0], [9.0, 9.0, 9.0]], dtype=np.float32)
    before = centers.copy()
    lloyds_iter(data, centers)
    np.testing.assert_array_equal(centers, before)


def test_run_lloyds_converges_on_separated_blobs():
    data = _two_blobs(2)
    centers = np.array([data[0], data[-1]], dtype=np.float32)
    result = run_lloyds(data, centers, 20)
    np.testing.assert_allclose(result.centers[0], data[:20].mean(axis=0), atol=1e-4)
    np.testing.assert_allclose(result.centers[1], data[20:].mean(axis=0), atol=1e-4)
    assert len(result.closest_center) == len(data)


def test_run_lloyds_residual_does_not_increase():
    data = _two_blobs(3)
    centers = np.array([data[0], data[1]], dtype=np.float32)
    one = run_lloyds(data, centers, 1)
    many = run_lloyds(data, centers, 10)
    assert many.residual <= one.residual + 1e-4


def test_run_lloyds_zero_reps_keeps_centers():
    data = _two_blobs()
    centers = np.array([[1.0, 1.0, 1.0], [2.0, 2.0, 2.0]], dtype=np.float32)
    result = run_lloyds(data, centers, 0)
    np.testing.assert_array_equal(result.centers, centers)
    assert result.residual == float(np.finfo(np.float32).max)


def test_selecting_pivots_rows_come_from_data_or_are_zero():
    data = np.arange(30, dtype=np.float32).reshape(10, 3) + 1.0
    pivots = selecting_pivots(data, 4, rng=7)
    assert pivots.shape == (4, 3)
    data_rows = {tuple(row) for row in data}
    for row in pivots:
        assert tuple(row) in data_rows or not row.any()


def test_selecting_pivots_is_reproducible_with_seed():
    data = np.arange(40, dtype=np.float32).reshape(20, 2)
    np.testing.assert_array_equal(
        selecting_pivots(data, 5, rng=11), selecting_pivots(data, 5, rng=11)
    )


def test_selecting_pivots_rejects_empty_data():
    with pytest.raises(ValueError):
        selecting_pivots(np.zeros((0, 3), dtype=np.float32), 2)


def test_kmeanspp_pivots_are_distinct_data_rows():
    data = np.arange(60, dtype=np.float32).reshape(20, 3)
    pivots = kmeanspp_selecting_pivots(data, 6, rng=3)
    data_rows = {tuple(row) for row in data}
    pivot_rows = [tuple(row) for row in pivots]
    assert all(row in data_rows for row in pivot_rows)
    assert len(set(pivot_rows)) == 6


def test_kmeanspp_picks_both_blobs():
    data = _two_blobs(4)
    pivots = kmeanspp_selecting_pivots(data, 2, rng=5)
    near_origin = (np.linalg.norm(pivots, axis=1) < 5).sum()
    assert near_origin == 1


def test_kmeanspp_with_identical_points_still_fills_all_pivots():
    data = np.ones((5, 2), dtype=np.float32)
    pivots = kmeanspp_selecting_pivots(data, 3, rng=1)
    np.testing.assert_array_equal(pivots, np.ones((3, 2), dtype=np.float32))


def test_kmeanspp_is_reproducible_with_seed():
    data = _two_blobs(6)
    np.testing.assert_array_equal(
        kmeanspp_selecting_pivots(data, 4, rng=9),
        kmeanspp_selecting_pivots(data, 4, rng=9),
    )