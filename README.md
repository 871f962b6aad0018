# vecshard

Tools for preparing large collections of dense vectors: squared-L2
nearest-center search, k-means clustering with random or k-means++ seeding,
random sampling of rows, splitting a data file into shards around k-means
centers, and product quantization (PQ) training and compression.

## Data format

Vector files hold a header of two little-endian `uint32` values (number of
rows, number of columns) followed by the rows, row-major. The element type
is given by the caller as a numpy dtype; `float32`, `uint8` and `int8` are
the usual choices. Computation is done in `float32`.

## Installation

```
pip install .
```

Install the test extra with `pip install .[test]` and run `pytest`.

## Modules

- `vecshard.binfile`: `read_bin_metadata(path)` returns `(rows, columns)`;
  `read_bin(path, dtype)` loads the whole matrix and checks the file size;
  `write_bin(path, array)` writes a matrix (a 1-D array becomes one column)
  and returns the number of bytes written. `HEADER_SIZE` is 8.
- `vecshard.math_utils`: `calc_distance` (squared Euclidean distance),
  `compute_vecs_l2sq` (squared row norms), `rotate_data_randomly`
  (multiply rows by a `dim x dim` matrix or its transpose),
  `compute_closest_centers_in_block` and `compute_closest_centers`
  (indices of the `k` nearest centers per row, shape `(rows, k)`, nearest
  first; the latter also returns an optional inverted index, a list of point
  ids per center), and `process_residuals` (subtract or add each row's
  assigned center).
- `vecshard.kmeans`: `selecting_pivots` (random rows; a repeated draw leaves
  that pivot row at zero), `kmeanspp_selecting_pivots` (k-means++ seeding,
  falling back to random selection above 2**23 points), `lloyds_iter` and
  `run_lloyds`, which return a `LloydsResult` with `centers`, `residual`,
  `closest_center` and `closest_docs`. `run_lloyds` stops early when the
  residual drops below float32 epsilon or improves by less than 0.001 %.
  The `rng` arguments take anything `numpy.random.default_rng` accepts.
- `vecshard.sampling`: `sample_array(data, p_val, rng)` and
  `sample_file(data_file, p_val, dtype, rng)` keep each row with probability
  `min(p_val, 1)` and return a `float32` array;
  `sample_to_files(base_file, output_prefix, sampling_rate, dtype, rng)`
  writes `<prefix>_data.bin` and `<prefix>_ids.bin` and returns the number
  of rows kept.
- `vecshard.partition`: `partition(...)` clusters a sample of a file, saves
  the centers to `<prefix>_centroids.bin` and shards the whole file;
  `estimate_cluster_sizes` estimates shard sizes from a 1 % sample;
  `shard_data_into_clusters` writes `<prefix>_subshard-<i>.bin` and
  `<prefix>_subshard-<i>_ids_uint32.bin` for each center and returns the
  shard sizes; `shard_data_paths` gives those two names. Inconsistent inputs
  raise `PartitionError`.
- `vecshard.pq`: `generate_pq_pivots` centres the training data, splits the
  coordinates into near-equal chunks, runs k-means in each chunk and writes
  the pivots plus `_centroid.bin`, `_rearrangement_perm.bin` and
  `_chunk_offsets.bin` beside them. It returns `False` without writing if a
  pivot file of the same shape already exists, `True` otherwise.
  `generate_pq_data_from_pivots` encodes every row of a data file (one code
  per chunk; bytes for at most 256 centers, `uint32` otherwise) and returns
  the number of rows. Errors raise `PQError`.
- `vecshard.memory_mapper`: `MemoryMapper(filename)` maps a file read-only,
  exposing `buf` (a `memoryview`), `file_size` and `closed`; use it as a
  context manager or call `close()`.
- `vecshard.parameters`: `Parameters`, a named-value store. `num_threads`
  starts at 0. `get(name)` raises `KeyError` for an unknown name and
  `ValueError` for a stored `None`; `get(name, default)` returns the default
  in both cases. `name in params` tests for a name.
- `vecshard.stats`: `QueryStats` counters with `get_percentile_stats` and
  `get_mean_stats`; the member is picked by a callable or a field name.

Progress messages go through the standard `logging` module under the
`vecshard.*` logger names.

## Example

```python
import numpy as np
from vecshard.binfile import write_bin
from vecshard.partition import partition

rng = np.random.default_rng(0)
data = rng.standard_normal((10_000, 32)).astype(np.float32)
write_bin("base.bin", data)

sizes = partition("base.bin", 0.1, 8, 15, "base", 1, np.float32, rng)
# writes base_centroids.bin, and base_subshard-<i>.bin and
# base_subshard-<i>_ids_uint32.bin for each of the 8 shards
```

Training and applying product quantization:

```python
from vecshard.binfile import read_bin
from vecshard.pq import generate_pq_pivots, generate_pq_data_from_pivots

train = read_bin("base.bin", np.float32)[:2000]
generate_pq_pivots(train, 256, 8, 12, "pq_pivots.bin", rng)
generate_pq_data_from_pivots("base.bin", 256, 8, "pq_pivots.bin",
                             "pq_compressed.bin", np.float32)
```

## What it does not do

- It builds no search index and answers no nearest-neighbour queries; it
  only prepares data (centers, shards, PQ codes) for such an index.
- It does not choose the number of shards from a memory budget; the caller
  gives `num_parts`.
- There is no command-line tool; everything is called from Python.