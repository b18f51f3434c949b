[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vhsmcan"
version = "0.1.0"
description = "Virtual CAN bus with emulated ECUs, a TCP bus server, terminal front ends and per-ECU rate limiting"
requires-python = ">=3.10"
keywords = ["can", "can-bus", "ecu", "automotive", "simulation", "rate-limiting", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Console :: Curses",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
    "Topic :: System :: Emulators",
]
dependencies = [
    "blessed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
vhsmcan = "vhsmcan.launcher:main"
vhsmcan-bus-server = "vhsmcan.bus_server:main"
vhsmcan-demo = "vhsmcan.demo:main"
vhsmcan-input-ecu = "vhsmcan.input_ecu:main"
vhsmcan-output-ecu = "vhsmcan.output_ecu:main"
vhsmcan-monitor = "vhsmcan.monitor:main"

[tool.hatch.build.targets.wheel]
packages = ["vhsmcan"]

[tool.hatch.build.targets.sdist]
include = ["vhsmcan", "tests", "pyproject.toml"]

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
