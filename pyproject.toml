[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "osdtool"
version = "0.1.0"
description = "Building blocks for managed OpenShift work: service logs, organizations, egress checks, packet captures, STS policies and federated roles"
requires-python = ">=3.10"
keywords = [
    "openshift",
    "sre",
    "service-log",
    "aws",
    "egress",
    "packet-capture",
    "sts",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml>=6.0",
    "semver>=3.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["osdtool"]

[tool.hatch.build.targets.sdist]
include = [
    "osdtool",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
