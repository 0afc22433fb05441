[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fncloudsync"
version = "0.1.0"
description = "Building blocks for local/remote folder mirroring: one-way sync planning, a SQLite-backed file index and queue, and a folder watcher."
requires-python = ">=3.11"
keywords = ["sync", "mirror", "backup", "file-index", "sqlite", "watcher"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Mirroring",
]
dependencies = [
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["fncloudsync"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
