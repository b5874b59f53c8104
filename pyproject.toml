[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "uav_onboard"
version = "0.1.0"
description = "Onboard configuration, telemetry, grid-intersection decisions and MJPEG-over-UDP video for a line-following UAV"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "uav",
    "drone",
    "telemetry",
    "udp",
    "mjpeg",
    "line-following",
    "grid-navigation",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
uav-onboard = "uav_onboard.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["uav_onboard"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
