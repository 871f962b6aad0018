"""k-means clustering, sampling, sharding and product quantization of binary vector files."""

__version__ = "0.1.0"