[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "metricsd"
version = "0.1.0"
description = "Metrics server and agent: gauges and counters over HTTP with gzip and HMAC-SHA256 signing"
requires-python = ">=3.10"
keywords = ["metrics", "monitoring", "gauge", "counter", "agent", "wsgi", "hmac"]
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
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "werkzeug>=3.0",
    "requests>=2.31",
    "psutil>=5.9",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "responses>=0.24",
]

[tool.hatch.build.targets.wheel]
packages = ["metricsd"]

[tool.hatch.build.targets.sdist]
include = ["metricsd", "tests"]

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
check_untyped_defs = true
