[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mysqlmcp"
version = "0.1.0"
description = "Per-database MySQL connection pools and read-only schema resources addressed by mysql:// URIs"
requires-python = ">=3.10"
dependencies = [
    "pymysql",
]
keywords = ["mysql", "mcp", "connection-pool", "schema", "information_schema", "resources"]
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
    "Framework :: AsyncIO",
    "Topic :: Database :: Front-Ends",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["mysqlmcp"]

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
check_untyped_defs = true
