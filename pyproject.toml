[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "boostrelay"
version = "0.1.0"
description = "Relay building blocks: beacon-node clients with failover, bid trace and block types, signing-domain helpers and a small command line."
requires-python = ">=3.10"
keywords = ["ethereum", "beacon-node", "relay", "mev-boost", "proposer-builder-separation"]
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
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
    "responses>=0.23",
]

[project.scripts]
boostrelay = "boostrelay.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["boostrelay"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
