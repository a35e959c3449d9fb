[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qnet"
version = "0.1.0"
description = "D-STAR repeater gateway building blocks: packets, Golay decoding, routing cache, configuration, gateway database and DVAP dongle control"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = [
    "d-star",
    "ham radio",
    "amateur radio",
    "dvap",
    "repeater",
    "gateway",
    "golay",
    "aprs",
    "maidenhead",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Ham Radio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["qnet"]

[tool.hatch.build.targets.sdist]
include = [
    "qnet",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
