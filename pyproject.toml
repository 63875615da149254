[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rollupnode"
version = "0.1.0"
description = "Building blocks for an optimistic rollup node and L2 output submitter: retry strategies, cancellation contexts, transaction management, L1 block ranges, Engine API types and configuration flags."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "rollup",
    "ethereum",
    "layer-2",
    "transaction-manager",
    "engine-api",
    "backoff",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-timeout",
]

[tool.hatch.build.targets.wheel]
packages = ["rollupnode"]

[tool.hatch.build.targets.sdist]
include = [
    "rollupnode",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
