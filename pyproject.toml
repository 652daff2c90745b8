[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "prehnite"
version = "0.59.0"
description = "Core building blocks of a small relational database: value model, schemas, wire protocol and MVCC transaction state."
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "mvcc", "ssi", "wire-protocol", "sql", "transactions"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["prehnite"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
