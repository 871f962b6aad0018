"""Product-quantization pivot training and vector compression."""

from __future__ import annotations

import logging
import os
import struct

import numpy as np

from vecshard.binfile import HEADER_SIZE, read_bin, read_bin_metadata, write_bin
from vecshard.kmeans import kmeanspp_selecting_pivots, run_lloyds
from vecshard.math_utils import compute_closest_centers

logger = logging.getLogger(__name__)

BLOCK_SIZE = 5_000_000
_HEADER = struct.Struct("<II")

CENTROID_SUFFIX = "_centroid.bin"
REARRANGEMENT_SUFFIX = "_rearrangement_perm.bin"
CHUNK_OFFSETS_SUFFIX = "_chunk_offsets.bin"


class PQError(Exception):
    """Raised when product-quantization inputs or files are inconsistent."""


def _chunk_layout(dim: int, num_pq_chunks: int) -> tuple[list[int], list[int]]:
    """Split ``dim`` coordinates into ``num_pq_chunks`` near-equal bins.

    Returns the coordinate order and the chunk offsets (``num_pq_chunks + 1``
    entries, the last one equal to ``dim``).
    """
    low_val = dim // num_pq_chunks
    high_val = -(-dim // num_pq_chunks)
    max_num_high = dim - low_val * num_pq_chunks
    cur_num_high = 0
    threshold = high_val

    bins: list[list[int]] = [[] for _ in range(num_pq_chunks)]
    for d in range(dim):
        bin_id, target = next(
            (b, members) for b, members in enumerate(bins) if len(members) < threshold
        )
        logger.debug(" Pushing %d into bin #: %d", d, bin_id)
        target.append(d)
        if len(target) == high_val:
            cur_num_high += 1
            if cur_num_high == max_num_high:
                threshold = low_val

    rearrangement = [d for members in bins for d in members]
    offsets = [0]
    for members in bins:
        offsets.append(offsets[-1] + len(members))
    logger.debug("Rearranged order of coordinates: %s", rearrangement)
    return rearrangement, offsets


def generate_pq_pivots(
    train_data,
    num_centers,
    num_pq_chunks,
    max_k_means_reps,
    pq_pivots_path,
    rng=None,
) -> bool:
    """Train PQ pivots on ``train_data`` and save them next to ``pq_pivots_path``.

    The training data is centred, its coordinates are split into
    ``num_pq_chunks`` chunks and k-means is run in each chunk. Four files are
    written: the pivots, the centroid, the coordinate order and the chunk
    offsets. Returns ``False`` without writing when a pivot file of the same
    shape already exists, ``True`` otherwise.
    """
    train = np.array(train_data, dtype=np.float32)
    if train.ndim != 2:
        raise PQError("training data must be a two-dimensional array")
    num_train, dim = train.shape
    if num_pq_chunks < 1:
        raise PQError("number of chunks must be at least 1")
    if num_pq_chunks > dim:
        raise PQError("number of chunks more than dimension")
    if num_train == 0:
        raise PQError("training data is empty")

    if os.path.exists(pq_pivots_path):
        file_num_centers, file_dim = read_bin_metadata(pq_pivots_path)
        if file_dim == dim and file_num_centers == num_centers:
            logger.info("PQ pivot file exists. Not generating again")
            return False

    generator = np.random.default_rng(rng)

    centroid = (train.sum(axis=0, dtype=np.float32) / np.float32(num_train)).astype(
        np.float32
    )
    train -= centroid

    rearrangement, chunk_offsets = _chunk_layout(dim, num_pq_chunks)

    full_pivot_data = np.zeros((num_centers, dim), dtype=np.float32)
    for chunk_id, (lo, hi) in enumerate(zip(chunk_offsets[:-1], chunk_offsets[1:])):
        if hi == lo:
            continue
        logger.info("Processing chunk %d with dimensions [%d, %d)", chunk_id, lo, hi)
        cur_data = np.ascontiguousarray(train[:, lo:hi])
        seeds = kmeanspp_selecting_pivots(cur_data, num_centers, generator)
        result = run_lloyds(cur_data, seeds, max_k_means_reps)
        full_pivot_data[:, lo:hi] = result.centers

    write_bin(pq_pivots_path, full_pivot_data)
    write_bin(f"{pq_pivots_path}{CENTROID_SUFFIX}", centroid.reshape(dim, 1))
    write_bin(
        f"{pq_pivots_path}{REARRANGEMENT_SUFFIX}",
        np.asarray(rearrangement, dtype=np.uint32).reshape(-1, 1),
    )
    write_bin(
        f"{pq_pivots_path}{CHUNK_OFFSETS_SUFFIX}",
        np.asarray(chunk_offsets, dtype=np.uint32).reshape(-1, 1),
    )
    return True


def _load_column(path: str, dtype, expected_rows: int, what: str) -> np.ndarray:
    column = read_bin(path, dtype)
    if column.shape != (expected_rows, 1):
        raise PQError(f"Error reading {what} file.")
    return column.reshape(-1)


def generate_pq_data_from_pivots(
    data_file,
    num_centers,
    num_pq_chunks,
    pq_pivots_path,
    pq_compressed_vectors_path,
    dtype=np.float32,
) -> int:
    """Compress every row of ``data_file`` with the pivots at ``pq_pivots_path``.

    The output holds a header (points, chunks) followed by one code per chunk
    for every point: bytes when there are at most 256 centers, 32-bit
    integers otherwise. Returns the number of points written.
    """
    num_points, dim = read_bin_metadata(data_file)

    if not os.path.exists(pq_pivots_path):
        raise PQError("PQ k-means pivot file not found")

    centroid = _load_column(
        f"{pq_pivots_path}{CENTROID_SUFFIX}", np.float32, dim, "centroid"
    )
    rearrangement = _load_column(
        f"{pq_pivots_path}{REARRANGEMENT_SUFFIX}", np.uint32, dim, "rearrangement"
    ).astype(np.int64)
    chunk_offsets = _load_column(
        f"{pq_pivots_path}{CHUNK_OFFSETS_SUFFIX}",
        np.uint32,
        num_pq_chunks + 1,
        "chunk offsets",
    ).astype(np.int64)

    pivots = read_bin(pq_pivots_path, np.float32)
    file_num_centers, file_dim = pivots.shape
    if file_num_centers != num_centers:
        raise PQError(
            f"ERROR: file number of PQ centers {file_num_centers} does not "
            f"match input argument {num_centers}"
        )
    if file_dim != dim:
        raise PQError("ERROR: PQ pivot dimension does not match base file dimension")
    logger.info("Loaded PQ pivot information")

    stored = np.dtype(dtype).newbyteorder("<")
    row_bytes = dim * stored.itemsize
    code_dtype = np.dtype("<u4") if num_centers > 256 else np.dtype(np.uint8)
    block_size = min(num_points, BLOCK_SIZE) or 1
    chunks = list(enumerate(zip(chunk_offsets[:-1], chunk_offsets[1:])))

    with open(data_file, "rb") as source, open(pq_compressed_vectors_path, "wb") as out:
        source.seek(HEADER_SIZE)
        out.write(_HEADER.pack(num_points, num_pq_chunks))
        for start in range(0, num_points, block_size):
            count = min(block_size, num_points - start)
            raw = source.read(count * row_bytes)
            if len(raw) != count * row_bytes:
                raise PQError(f"{data_file}: file ends before row {start + count}")
            logger.info("Processing points [%d, %d)..", start, start + count)

            block = np.frombuffer(raw, dtype=stored).reshape(count, dim)
            block = block.astype(np.float32) - centroid
            block = block[:, rearrangement]

            codes = np.zeros((count, num_pq_chunks), dtype=np.uint32)
            for chunk_id, (lo, hi) in chunks:
                if hi == lo:
                    continue
                closest, _ = compute_closest_centers(
                    block[:, lo:hi], pivots[:, lo:hi], 1
                )
                codes[:, chunk_id] = closest[:, 0]
            out.write(codes.astype(code_dtype).tobytes())
    return num_points