[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rovercraft"
version = "0.1.0"
description = "A replicated, partitioned in-memory probe store with an HTTP API and gRPC peer synchronisation"
requires-python = ">=3.10"
keywords = ["key-value", "distributed", "replication", "partitioning", "grpc", "in-memory"]
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
    "Framework :: AsyncIO",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "grpcio",
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
rovercraft = "rovercraft.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["rovercraft"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
