[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hpagrid"
version = "0.1.0"
description = "Hierarchical pathfinding (HPA*) for large 2D, 2.5D and 3D grids"
requires-python = ">=3.10"
dependencies = []
keywords = ["pathfinding", "hpa", "a-star", "grid", "flow-field", "navigation", "games"]
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
    "Topic :: Games/Entertainment :: Simulation",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hpagrid"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
