[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sveltoslib"
version = "0.1.0"
description = "Building blocks for multi-cluster add-on controllers: a threaded request deployer, owner-reference bookkeeping, kubeconfig Secrets, run-time log levels and CRD event handling."
requires-python = ">=3.10"
keywords = ["kubernetes", "clusters", "deployer", "kubeconfig", "owner-references", "controllers"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sveltoslib"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
