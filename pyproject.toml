[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rdbtool"
version = "0.1.0"
description = "Read and write Redis RDB snapshot files"
requires-python = ">=3.10"
dependencies = []
keywords = ["redis", "rdb", "snapshot", "parser", "encoder", "database"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rdbtool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
