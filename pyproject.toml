[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "omc"
version = "0.1.0"
description = "Inspect OpenShift must-gather directories offline: resources, certificates, haproxy backends and etcd state."
requires-python = ">=3.10"
keywords = ["openshift", "kubernetes", "must-gather", "troubleshooting", "etcd", "haproxy", "certificates"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
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
    "pyyaml",
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
omc = "omc.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["omc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
