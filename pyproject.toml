[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wind"
version = "0.1.0"
description = "Building blocks for services: contexts, structured errors, resource pools, task groups, circuit-breaker rules, service discovery and load balancing."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "microservices",
    "context",
    "resource-pool",
    "errgroup",
    "circuit-breaker",
    "service-discovery",
    "load-balancing",
    "snowflake",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["wind"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
