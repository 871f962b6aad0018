"""Split a large binary matrix file into shards around k-means centers.

A random sample of the base file is clustered with k-means. Every base
point is then written to the shards of its ``k_base`` nearest centers.
"""

from __future__ import annotations

import logging
import struct
from contextlib import ExitStack

import numpy as np

from vecshard.binfile import HEADER_SIZE, read_bin_metadata, write_bin
from vecshard.kmeans import kmeanspp_selecting_pivots, run_lloyds
from vecshard.math_utils import compute_closest_centers
from vecshard.sampling import sample_file

logger = logging.getLogger(__name__)

BLOCK_SIZE = 5_000_000
ESTIMATE_SAMPLING_RATE = 0.01
_HEADER = struct.Struct("<II")


class PartitionError(Exception):
    """Raised when partition inputs do not fit together."""


def _pivot_matrix(pivots) -> np.ndarray:
    matrix = np.asarray(pivots, dtype=np.float32)
    if matrix.ndim != 2:
        raise PartitionError("pivots must be a two-dimensional array")
    if matrix.shape[0] == 0:
        raise PartitionError("at least one pivot is needed")
    return matrix


def shard_data_paths(prefix_path, shard_id: int) -> tuple[str, str]:
    """Return the data and id-map file names of shard ``shard_id``."""
    base = f"{prefix_path}_subshard-{shard_id}"
    return f"{base}.bin", f"{base}_ids_uint32.bin"


def estimate_cluster_sizes(
    data_file, pivots, k_base=1, dtype=np.float32, rng=None
) -> list[int]:
    """Estimate how many points each pivot's shard will receive.

    One percent of the rows of ``data_file`` are sampled, each sampled row is
    counted for its ``k_base`` nearest pivots, and the counts are scaled back
    up by the sampling rate.
    """
    pivot_matrix = _pivot_matrix(pivots)
    num_centers, dim = pivot_matrix.shape
    sample = sample_file(data_file, ESTIMATE_SAMPLING_RATE, dtype, rng)
    if sample.shape[1] != dim:
        raise PartitionError("dimensions dont match for pivot set and base set")

    counts = np.zeros(num_centers, dtype=np.int64)
    if sample.shape[0]:
        closest, _ = compute_closest_centers(sample, pivot_matrix, k_base)
        counts += np.bincount(
            closest.reshape(-1).astype(np.int64), minlength=num_centers
        )

    scale = 1.0 / ESTIMATE_SAMPLING_RATE
    sizes = [int(float(count) * scale) for count in counts]
    logger.info("Estimated cluster sizes: %s", " ".join(str(s) for s in sizes))
    return sizes


def shard_data_into_clusters(
    data_file, pivots, k_base, prefix_path, dtype=np.float32
) -> list[int]:
    """Write every row of ``data_file`` to the shards of its nearest pivots.

    Shard ``i`` gets ``<prefix>_subshard-i.bin`` with its rows (in the input
    type) and ``<prefix>_subshard-i_ids_uint32.bin`` with their original row
    numbers. Returns the number of rows in each shard.
    """
    pivot_matrix = _pivot_matrix(pivots)
    num_centers, dim = pivot_matrix.shape
    num_points, base_dim = read_bin_metadata(data_file)
    if base_dim != dim:
        raise PartitionError("dimensions dont match for train set and base set")
    if k_base > num_centers:
        raise PartitionError(f"k_base ({k_base}) > num_centers ({num_centers})")

    stored = np.dtype(dtype).newbyteorder("<")
    row_bytes = dim * stored.itemsize
    block_size = min(num_points, BLOCK_SIZE) or 1
    counts = [0] * num_centers

    with ExitStack() as stack:
        source = stack.enter_context(open(data_file, "rb"))
        source.seek(HEADER_SIZE)
        writers = []
        for shard_id in range(num_centers):
            data_path, ids_path = shard_data_paths(prefix_path, shard_id)
            data_out = stack.enter_context(open(data_path, "wb"))
            ids_out = stack.enter_context(open(ids_path, "wb"))
            data_out.write(_HEADER.pack(0, base_dim))
            ids_out.write(_HEADER.pack(0, 1))
            writers.append((data_out, ids_out))

        for start in range(0, num_points, block_size):
            count = min(block_size, num_points - start)
            raw = source.read(count * row_bytes)
            if len(raw) != count * row_bytes:
                raise PartitionError(
                    f"{data_file}: file ends before row {start + count}"
                )
            block = np.frombuffer(raw, dtype=stored).reshape(count, dim)
            closest, _ = compute_closest_centers(
                block.astype(np.float32), pivot_matrix, k_base
            )
            for shard_id, (data_out, ids_out) in enumerate(writers):
                members = np.flatnonzero((closest == shard_id).any(axis=1))
                if members.size == 0:
                    continue
                data_out.write(block[members].tobytes())
                ids_out.write((members + start).astype("<u4").tobytes())
                counts[shard_id] += int(members.size)

        for (data_out, ids_out), shard_count in zip(writers, counts):
            data_out.seek(0)
            data_out.write(_HEADER.pack(shard_count, base_dim))
            ids_out.seek(0)
            ids_out.write(_HEADER.pack(shard_count, 1))

    logger.info("Actual shard sizes: %s", " ".join(str(c) for c in counts))
    logger.info(
        "Partitioned %d with replication factor %d to get %d points across %d shards",
        num_points,
        k_base,
        sum(counts),
        num_centers,
    )
    return counts


def partition(
    data_file,
    sampling_rate,
    num_parts,
    max_k_means_reps,
    prefix_path,
    k_base=1,
    dtype=np.float32,
    rng=None,
) -> list[int]:
    """Cluster a sample of ``data_file`` and shard the whole file around it.

    The k-means centers are saved to ``<prefix>_centroids.bin``. Returns the
    number of rows written to each shard.
    """
    generator = np.random.default_rng(rng)
    train = sample_file(data_file, sampling_rate, dtype, generator)
    if train.shape[0] == 0:
        raise PartitionError("the sample drawn from the base file is empty")
    train_dim = train.shape[1]

    logger.info("Processing global k-means (kmeans_partitioning Step)")
    seeds = kmeanspp_selecting_pivots(train, num_parts, generator)
    pivots = run_lloyds(train, seeds, max_k_means_reps).centers

    logger.info("Saving global k-center pivots")
    write_bin(f"{prefix_path}_centroids.bin", pivots.reshape(num_parts, train_dim))

    estimate_cluster_sizes(data_file, pivots, k_base, dtype, generator)
    return shard_data_into_clusters(data_file, pivots, k_base, prefix_path, dtype)