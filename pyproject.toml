[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "adaptrrt"
version = "0.1.0"
description = "RRT/RRT* path planning on occupancy grids with wall inflation, path smoothing and obstacle-aware replanning"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "rrt",
    "rrt-star",
    "path-planning",
    "motion-planning",
    "occupancy-grid",
    "robotics",
    "obstacle-avoidance",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
adaptrrt = "adaptrrt.node:main"

[tool.setuptools.packages.find]
include = ["adaptrrt*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
