[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "memkv"
version = "0.1.0"
description = "An in-memory key-value engine running Redis-style commands over keys, lists, sets and sorted sets"
requires-python = ">=3.10"
dependencies = [
    "sortedcontainers",
]
keywords = ["key-value", "in-memory", "database", "redis", "sorted-set"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["memkv"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
