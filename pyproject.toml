[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bwtkit"
version = "0.1.0"
description = "FM-index over DNA, FASTA/FASTQ reading and short-read alignment post-processing"
requires-python = ">=3.10"
dependencies = []
keywords = ["bioinformatics", "bwt", "fm-index", "suffix array", "short reads", "insert size"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bwtkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
