import numpy as np
import pytest

from vecshard.binfile import read_bin, read_bin_metadata, write_bin
from vecshard.sampling import sample_array, sample_file, sample_to_files


def _base(n=200, dim=3, dtype=np.float32):
    return (np.arange(n * dim) % 120).astype(dtype).reshape(n, dim)


def _unique_base(n=200, dim=3):
    return np.arange(n * dim, dtype=np.float32).reshape(n, dim)


def test_sample_array_keeps_all_at_one():
    data = _base(dtype=np.int8)
    result = sample_array(data, 1.0, rng=1)
    assert result.dtype == np.float32
    np.testing.assert_array_equal(result, data.astype(np.float32))


def test_sample_array_clamps_above_one():
    data = _unique_base(50)
    np.testing.assert_array_equal(sample_array(data, 5.0, rng=3), data)


def test_sample_array_empty_at_zero():
    result = sample_array(_unique_base(50, 4), 0.0, rng=2)
    assert result.shape == (0, 4)


def test_sample_array_subset_in_order():
    data = _unique_base(300)
    result = sample_array(data, 0.5, rng=7)
    assert 0 < result.shape[0] < 300
    rows = {tuple(r) for r in data}
    assert all(tuple(r) in rows for r in result)
    assert np.all(np.diff(result[:, 0]) > 0)


def test_sample_array_deterministic_with_seed():
    data = _unique_base(100)
    np.testing.assert_array_equal(
        sample_array(data, 0.3, rng=11), sample_array(data, 0.3, rng=11)
    )


def test_sample_array_rejects_vector():
    with pytest.raises(ValueError):
        sample_array(np.arange(5), 0.5)


def test_sample_file_matches_array_sampling(tmp_path):
    path = tmp_path / "base.bin"
    data = _base(dtype=np.uint8)
    write_bin(path, data)
    from_file = sample_file(path, 0.4, np.uint8, rng=5)
    from_array = sample_array(data, 0.4, rng=5)
    np.testing.assert_array_equal(from_file, from_array)


def test_sample_file_all_rows(tmp_path):
    path = tmp_path / "base.bin"
    data = _unique_base(40)
    write_bin(path, data)
    np.testing.assert_array_equal(sample_file(path, 1.0, rng=0), data)


def test_sample_file_none_keeps_dimension(tmp_path):
    path = tmp_path / "base.bin"
    write_bin(path, _unique_base(40, 6))
    assert sample_file(path, 0.0, rng=0).shape == (0, 6)


def test_sample_file_truncated_raises(tmp_path):
    path = tmp_path / "base.bin"
    write_bin(path, _unique_base(10))
    path.write_bytes(path.read_bytes()[:-8])
    with pytest.raises(ValueError):
        sample_file(path, 1.0)


def test_sample_to_files_consistent(tmp_path):
    base = tmp_path / "base.bin"
    data = _unique_base(250, 4)
    write_bin(base, data)
    prefix = tmp_path / "sample"
    count = sample_to_files(base, prefix, 0.3, np.float32, rng=9)

    sampled = read_bin(f"{prefix}_data.bin")
    ids = read_bin(f"{prefix}_ids.bin", np.uint32)
    assert read_bin_metadata(f"{prefix}_data.bin") == (count, 4)
    assert read_bin_metadata(f"{prefix}_ids.bin") == (count, 1)
    assert 0 < count < 250
    ids = ids.reshape(-1).astype(np.int64)
    assert np.all(np.diff(ids) > 0)
    np.testing.assert_array_equal(sampled, data[ids])


def test_sample_to_files_int8_bytes_preserved(tmp_path):
    base = tmp_path / "base.bin"
    data = (np.arange(60) - 30).astype(np.int8).reshape(20, 3)
    write_bin(base, data)
    prefix = tmp_path / "s"
    count = sample_to_files(base, prefix, 1.0, np.int8, rng=1)
    assert count == 20
    np.testing.assert_array_equal(read_bin(f"{prefix}_data.bin", np.int8), data)


def test_sample_to_files_zero_rate(tmp_path):
    base = tmp_path / "base.bin"
    write_bin(base, _unique_base(30, 5))
    prefix = tmp_path / "none"
    assert sample_to_files(base, prefix, 0.0, rng=4) == 0
    assert read_bin_metadata(f"{prefix}_data.bin") == (0, 5)
    assert read_bin(f"{prefix}_ids.bin", np.uint32).shape == (0, 1)