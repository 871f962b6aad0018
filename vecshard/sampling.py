"""Random row sampling from binary matrix files and in-memory arrays."""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator

import numpy as np

from vecshard.binfile import HEADER_SIZE, read_bin_metadata

logger = logging.getLogger(__name__)

_READ_BLOCK_BYTES = 64 * 1024 * 1024
_HEADER = struct.Struct("<II")


def _iter_blocks(path, dtype) -> Iterator[tuple[int, np.ndarray]]:
    """Yield ``(first_row_id, block)`` pairs covering every row of ``path``."""
    npts, ndims = read_bin_metadata(path)
    stored = np.dtype(dtype).newbyteorder("<")
    row_bytes = ndims * stored.itemsize
    rows_per_block = max(1, _READ_BLOCK_BYTES // max(row_bytes, 1))
    with open(path, "rb") as fh:
        fh.seek(HEADER_SIZE)
        start = 0
        while start < npts:
            count = min(rows_per_block, npts - start)
            raw = fh.read(count * row_bytes)
            if len(raw) != count * row_bytes:
                raise ValueError(f"{path}: file ends before row {start + count}")
            yield start, np.frombuffer(raw, dtype=stored).reshape(count, ndims)
            start += count


def sample_to_files(base_file, output_prefix, sampling_rate, dtype=np.float32, rng=None) -> int:
    """Sample rows of ``base_file`` into ``<prefix>_data.bin`` and ``<prefix>_ids.bin``.

    Each row is kept with probability ``sampling_rate``. The data file holds
    the kept rows; the id file holds their row numbers as a single column.
    Returns the number of rows kept.
    """
    generator = np.random.default_rng(rng)
    stored = np.dtype(dtype).newbyteorder("<")
    npts, ndims = read_bin_metadata(base_file)
    logger.info("Loading base %s. #points: %d. #dim: %d.", base_file, npts, ndims)

    data_path = f"{output_prefix}_data.bin"
    ids_path = f"{output_prefix}_ids.bin"
    num_sampled = 0
    with open(data_path, "wb") as data_out, open(ids_path, "wb") as ids_out:
        data_out.write(_HEADER.pack(0, ndims))
        ids_out.write(_HEADER.pack(0, 1))
        for start, block in _iter_blocks(base_file, stored):
            keep = generator.random(block.shape[0], dtype=np.float32) < sampling_rate
            chosen = np.flatnonzero(keep)
            if chosen.size == 0:
                continue
            data_out.write(block[chosen].tobytes())
            ids_out.write((chosen + start).astype("<u4").tobytes())
            num_sampled += int(chosen.size)
        data_out.seek(0)
        data_out.write(_HEADER.pack(num_sampled, ndims))
        ids_out.seek(0)
        ids_out.write(_HEADER.pack(num_sampled, 1))
    logger.info("Wrote %d points to sample file: %s", num_sampled, data_path)
    return num_sampled


def sample_file(data_file, p_val, dtype=np.float32, rng=None) -> np.ndarray:
    """Return a random sample of the rows of ``data_file`` as ``float32``.

    Each row is kept with probability ``min(p_val, 1)``; the result has shape
    ``(slice_size, ndims)``.
    """
    generator = np.random.default_rng(rng)
    p_val = min(p_val, 1)
    _, ndims = read_bin_metadata(data_file)
    kept = []
    for _, block in _iter_blocks(data_file, dtype):
        keep = generator.random(block.shape[0], dtype=np.float32) < p_val
        if keep.any():
            kept.append(block[keep].astype(np.float32))
    if not kept:
        return np.empty((0, ndims), dtype=np.float32)
    return np.concatenate(kept, axis=0)


def sample_array(data, p_val, rng=None) -> np.ndarray:
    """Return a random sample of the rows of ``data`` as ``float32``.

    Each row is kept with probability ``min(p_val, 1)``.
    """
    matrix = np.asarray(data)
    if matrix.ndim != 2:
        raise ValueError("data must be a two-dimensional array")
    generator = np.random.default_rng(rng)
    p_val = min(p_val, 1)
    keep = generator.random(matrix.shape[0], dtype=np.float32) < p_val
    return matrix[keep].astype(np.float32)