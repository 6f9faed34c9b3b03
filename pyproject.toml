[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ndtwatch"
version = "0.1.0"
description = "Normal Distributions Transform scoring building blocks and a shared-memory vital-counter watchdog"
requires-python = ">=3.10"
keywords = [
    "ndt",
    "normal distributions transform",
    "point cloud",
    "voxel grid",
    "line search",
    "watchdog",
    "shared memory",
    "vital monitor",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "numpy",
    "scipy",
    "filelock",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
ndtwatch-observer = "ndtwatch.observer:main"

[tool.hatch.build.targets.wheel]
packages = ["ndtwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
