"""Reading and writing the row-major binary matrix format.

A file holds two little-endian ``uint32`` values, the number of rows and the
number of columns, followed by the rows themselves.
"""

from __future__ import annotations

import os
import struct

import numpy as np

HEADER_SIZE = 8
_HEADER = struct.Struct("<II")
_U32_MAX = 0xFFFFFFFF


def _little_endian(dtype) -> np.dtype:
    return np.dtype(dtype).newbyteorder("<")


def read_bin_metadata(path) -> tuple[int, int]:
    """Return ``(num_points, num_dims)`` from the header of ``path``."""
    with open(path, "rb") as fh:
        raw = fh.read(HEADER_SIZE)
    if len(raw) < HEADER_SIZE:
        raise ValueError(f"{os.fspath(path)}: file too short to hold a header")
    npts, ndims = _HEADER.unpack(raw)
    return npts, ndims


def read_bin(path, dtype=np.float32) -> np.ndarray:
    """Load the whole matrix in ``path`` as an array of shape ``(npts, ndims)``."""
    target = np.dtype(dtype)
    stored = _little_endian(target)
    npts, ndims = read_bin_metadata(path)
    expected = HEADER_SIZE + npts * ndims * stored.itemsize
    actual = os.path.getsize(path)
    if actual != expected:
        raise ValueError(
            f"{os.fspath(path)}: file size {actual} does not match "
            f"expected size {expected} for {npts} x {ndims} of {target}"
        )
    data = np.fromfile(path, dtype=stored, count=npts * ndims, offset=HEADER_SIZE)
    return data.reshape(npts, ndims).astype(target, copy=False)


def write_bin(path, array) -> int:
    """Write ``array`` to ``path`` and return the number of bytes written.

    A one-dimensional array is stored as a single column.
    """
    matrix = np.asarray(array)
    if matrix.ndim == 1:
        matrix = matrix.reshape(-1, 1)
    if matrix.ndim != 2:
        raise ValueError("only one- or two-dimensional arrays can be written")
    npts, ndims = matrix.shape
    if npts > _U32_MAX or ndims > _U32_MAX:
        raise ValueError("matrix dimensions do not fit in 32 bits")
    payload = np.ascontiguousarray(matrix, dtype=_little_endian(matrix.dtype)).tobytes()
    with open(path, "wb") as fh:
        fh.write(_HEADER.pack(npts, ndims))
        fh.write(payload)
    return HEADER_SIZE + len(payload)