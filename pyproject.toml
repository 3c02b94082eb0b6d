[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sqlplan"
version = "0.1.0"
description = "SQL values, expressions, table schemas, query plan nodes and a plan optimizer"
requires-python = ">=3.10"
dependencies = []
keywords = ["sql", "query-plan", "optimizer", "expression", "database", "schema"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sqlplan"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
