[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "logcore"
version = "0.1.0"
description = "Low-level structured logging: entries, fields, JSON and console encoders, cores and write syncers"
requires-python = ">=3.11"
dependencies = []
keywords = ["logging", "structured-logging", "json", "encoder"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["logcore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
