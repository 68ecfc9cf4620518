[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rawlink"
version = "0.1.0"
description = "Send and receive raw data link layer packets, with MAC address handling and interface listing"
requires-python = ">=3.10"
keywords = ["networking", "ethernet", "af_packet", "bpf", "mac-address", "packet-capture"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Operating System :: POSIX :: BSD",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
rawlink = "rawlink.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["rawlink"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
