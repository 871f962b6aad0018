"""Lloyd's k-means iterations and pivot seeding (random and k-means++)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from vecshard.math_utils import calc_distance, compute_closest_centers, compute_vecs_l2sq

logger = logging.getLogger(__name__)

_FLOAT_MAX = float(np.finfo(np.float32).max)
_FLOAT_EPS = float(np.finfo(np.float32).eps)
_KMEANSPP_MAX_POINTS = 1 << 23


@dataclass
class LloydsResult:
    """Outcome of one or more Lloyd's iterations."""

    centers: np.ndarray
    residual: float
    closest_center: np.ndarray | None = None
    closest_docs: list[list[int]] = field(default_factory=list)


def _matrix(data, name: str) -> np.ndarray:
    array = np.asarray(data, dtype=np.float32)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2:
        raise ValueError(f"{name} must be a two-dimensional array")
    return array


def lloyds_iter(data, centers, docs_l2sq=None) -> LloydsResult:
    """Run one Lloyd's iteration.

    Assigns every point to its nearest center, moves each center to the mean
    of its points (a center with no points becomes the zero vector) and
    returns the new centers with the summed squared distance of the points
    to them.
    """
    points = _matrix(data, "data")
    current = _matrix(centers, "centers")
    num_centers, dim = current.shape
    if points.shape[1] != dim:
        raise ValueError("data and centers must have the same dimension")
    if docs_l2sq is None:
        docs_l2sq = compute_vecs_l2sq(points)

    closest, closest_docs = compute_closest_centers(
        points, current, 1, docs_l2sq, True
    )
    closest_center = closest.reshape(-1).astype(np.uint32)

    new_centers = np.zeros((num_centers, dim), dtype=np.float32)
    for center_id, members in enumerate(closest_docs):
        if members:
            cluster_sum = points[members].astype(np.float64).sum(axis=0)
            new_centers[center_id] = (cluster_sum / len(members)).astype(np.float32)

    diff = points - new_centers[closest_center.astype(np.int64)]
    per_point = np.einsum("ij,ij->i", diff, diff).astype(np.float32)
    residual = float(per_point.sum(dtype=np.float32))

    return LloydsResult(new_centers, residual, closest_center, closest_docs)


def run_lloyds(data, centers, max_reps) -> LloydsResult:
    """Iterate Lloyd's algorithm up to ``max_reps`` times or until it settles."""
    points = _matrix(data, "data")
    current = _matrix(centers, "centers").copy()
    docs_l2sq = compute_vecs_l2sq(points)

    result = LloydsResult(current, _FLOAT_MAX)
    for rep in range(max_reps):
        old_residual = result.residual
        result = lloyds_iter(points, result.centers, docs_l2sq)
        residual = result.residual
        logger.info("Lloyd's iter %d  dist_sq residual: %s", rep, residual)
        if residual < _FLOAT_EPS or (
            rep != 0 and (old_residual - residual) / residual < 0.00001
        ):
            logger.info(
                "Residuals unchanged: %s becomes %s. Early termination.",
                old_residual,
                residual,
            )
            break
    return result


def selecting_pivots(data, num_centers, rng=None) -> np.ndarray:
    """Pick ``num_centers`` random rows of ``data`` as pivots.

    A draw that repeats an earlier pick leaves its pivot row at zero.
    """
    points = _matrix(data, "data")
    num_points, dim = points.shape
    if num_points == 0:
        raise ValueError("cannot select pivots from an empty data set")
    generator = np.random.default_rng(rng)
    logger.info("Selecting %d pivots from %d points", num_centers, num_points)

    pivots = np.zeros((num_centers, dim), dtype=np.float32)
    picked: set[int] = set()
    for slot in range(num_centers):
        candidate = int(generator.integers(0, num_points))
        if candidate in picked:
            continue
        picked.add(candidate)
        pivots[slot] = points[candidate]
    return pivots


def kmeanspp_selecting_pivots(data, num_centers, rng=None) -> np.ndarray:
    """Pick ``num_centers`` pivots by k-means++ seeding.

    Falls back to :func:`selecting_pivots` for more than 2**23 points.
    """
    points = _matrix(data, "data")
    num_points, dim = points.shape
    if num_points > _KMEANSPP_MAX_POINTS:
        logger.error(
            "n_pts %d currently not supported for k-means++, maximum is %d. "
            "Falling back to random pivot selection.",
            num_points,
            _KMEANSPP_MAX_POINTS,
        )
        return selecting_pivots(points, num_centers, rng)
    if num_points == 0:
        raise ValueError("cannot select pivots from an empty data set")

    generator = np.random.default_rng(rng)
    logger.info("Selecting %d pivots from %d points", num_centers, num_points)

    pivots = np.zeros((num_centers, dim), dtype=np.float32)
    if num_centers == 0:
        return pivots

    init_id = int(generator.integers(0, num_points))
    picked = [init_id]
    pivots[0] = points[init_id]

    diff = points - points[init_id]
    dist = np.einsum("ij,ij->i", diff, diff).astype(np.float32)

    num_picked = 1
    sum_flag = False
    while num_picked < num_centers:
        dart_val = float(generator.random())
        dist64 = dist.astype(np.float64)
        total = float(dist64.sum())
        if total == 0:
            sum_flag = True
        dart_val *= total

        prefix = np.cumsum(dist64) - dist64
        hits = (dart_val >= prefix) & (dart_val < prefix + dist64)
        tmp_pivot = int(np.argmax(hits)) if hits.any() else num_points - 1

        if tmp_pivot in picked and not sum_flag:
            continue
        picked.append(tmp_pivot)
        pivots[num_picked] = points[tmp_pivot]

        diff = points - points[tmp_pivot]
        np.minimum(dist, np.einsum("ij,ij->i", diff, diff).astype(np.float32), out=dist)
        num_picked += 1
    logger.info("done.")
    return pivots


__all__ = [
    "LloydsResult",
    "calc_distance",
    "kmeanspp_selecting_pivots",
    "lloyds_iter",
    "run_lloyds",
    "selecting_pivots",
]