"""Vector arithmetic helpers: squared norms, rotations and nearest-center search."""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def _as_matrix(data, name: str) -> np.ndarray:
    array = np.asarray(data, dtype=np.float32)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2:
        raise ValueError(f"{name} must be a two-dimensional array")
    return array


def calc_distance(vec_1, vec_2) -> float:
    """Return the squared Euclidean distance between two vectors."""
    a = np.asarray(vec_1, dtype=np.float32)
    b = np.asarray(vec_2, dtype=np.float32)
    if a.shape != b.shape:
        raise ValueError("vectors must have the same dimension")
    diff = a - b
    return float(np.dot(diff, diff))


def compute_vecs_l2sq(data) -> np.ndarray:
    """Return the squared L2 norm of every row of ``data``."""
    matrix = _as_matrix(data, "data")
    return np.einsum("ij,ij->i", matrix, matrix).astype(np.float32)


def rotate_data_randomly(data, rot_mat, transpose_rot=False) -> np.ndarray:
    """Multiply the rows of ``data`` by ``rot_mat`` (or its transpose)."""
    matrix = _as_matrix(data, "data")
    rotation = _as_matrix(rot_mat, "rot_mat")
    dim = matrix.shape[1]
    if rotation.shape != (dim, dim):
        raise ValueError("rotation matrix must be dim x dim")
    if transpose_rot:
        logger.info("Transposing rotation matrix..")
        rotation = rotation.T
    logger.info("Rotating data with random matrix..")
    result = (matrix @ rotation).astype(np.float32)
    logger.info("done.")
    return result


def _distance_matrix(data, centers, docs_l2sq, centers_l2sq) -> np.ndarray:
    dist = docs_l2sq[:, None] + centers_l2sq[None, :]
    dist -= np.float32(2.0) * (data @ centers.T)
    return dist.astype(np.float32)


def compute_closest_centers_in_block(
    data, centers, docs_l2sq, centers_l2sq, k=1
) -> np.ndarray:
    """Return the indices of the ``k`` nearest centers for every row.

    The result has shape ``(num_points, k)``, nearest first.
    """
    matrix = _as_matrix(data, "data")
    center_matrix = _as_matrix(centers, "centers")
    num_centers = center_matrix.shape[0]
    if k > num_centers:
        raise ValueError(f"k ({k}) > num_center({num_centers})")
    if k < 1:
        raise ValueError("k must be at least 1")
    if center_matrix.shape[1] != matrix.shape[1]:
        raise ValueError("data and centers must have the same dimension")
    docs = np.asarray(docs_l2sq, dtype=np.float32).reshape(-1)
    cents = np.asarray(centers_l2sq, dtype=np.float32).reshape(-1)
    if docs.shape[0] != matrix.shape[0] or cents.shape[0] != num_centers:
        raise ValueError("norm arrays do not match the data")

    dist = _distance_matrix(matrix, center_matrix, docs, cents)
    if k == 1:
        return np.argmin(dist, axis=1).astype(np.uint32).reshape(-1, 1)
    order = np.argsort(dist, axis=1, kind="stable")[:, :k]
    return order.astype(np.uint32)


def compute_closest_centers(
    data, pivot_data, k=1, pts_norms_squared=None, build_inverted_index=False
):
    """Find the ``k`` closest pivots for every row of ``data``.

    Returns ``(closest, inverted_index)`` where ``closest`` has shape
    ``(num_points, k)`` and ``inverted_index`` is a list holding, for each
    pivot, the ids of the points assigned to it, or ``None`` when not asked for.
    """
    matrix = _as_matrix(data, "data")
    pivots = _as_matrix(pivot_data, "pivot_data")
    num_centers = pivots.shape[0]
    if k > num_centers:
        raise ValueError(f"k ({k}) > num_center({num_centers})")

    if pts_norms_squared is None:
        pts_norms = compute_vecs_l2sq(matrix)
    else:
        pts_norms = np.asarray(pts_norms_squared, dtype=np.float32).reshape(-1)
    pivot_norms = compute_vecs_l2sq(pivots)

    closest = compute_closest_centers_in_block(
        matrix, pivots, pts_norms, pivot_norms, k
    )

    inverted_index = None
    if build_inverted_index:
        inverted_index = [[] for _ in range(num_centers)]
        for point_id, row in enumerate(closest):
            for center_id in row:
                inverted_index[int(center_id)].append(point_id)
    return closest, inverted_index


def process_residuals(data, pivot_data, closest_centers, to_subtract) -> np.ndarray:
    """Subtract (or add) each row's nearest pivot and return the result."""
    matrix = _as_matrix(data, "data")
    pivots = _as_matrix(pivot_data, "pivot_data")
    num_points, dim = matrix.shape
    if pivots.shape[1] != dim:
        raise ValueError("data and pivots must have the same dimension")
    assignment = np.asarray(closest_centers).reshape(-1)
    if assignment.shape[0] < num_points:
        raise ValueError("one center is needed for every point")
    assignment = assignment[:num_points].astype(np.int64)
    logger.info(
        "Processing residuals of %d points in %d dimensions using %d centers",
        num_points,
        dim,
        pivots.shape[0],
    )
    offsets = pivots[assignment]
    result = matrix - offsets if to_subtract else matrix + offsets
    return result.astype(np.float32)