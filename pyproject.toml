[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rediscache"
version = "0.1.0"
description = "Object caching and session storage on top of Redis"
requires-python = ">=3.10"
keywords = ["redis", "cache", "session", "pipeline"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Database :: Front-Ends",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "redis>=4.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["rediscache"]

[tool.pytest.ini_options]
addopts = "-ra"
