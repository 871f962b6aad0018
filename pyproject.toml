[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vecshard"
version = "0.1.0"
description = "k-means clustering, sampling, sharding and product quantization of binary vector data files"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["k-means", "k-means++", "product quantization", "vector data", "sharding", "sampling"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Information Analysis",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vecshard"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
