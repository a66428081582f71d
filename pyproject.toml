[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pcompose"
version = "0.1.0"
description = "HTTP/WebSocket control API, client and command line for managing the processes of a running project"
requires-python = ">=3.10"
keywords = ["process", "orchestrator", "supervisor", "compose", "http-api", "websocket"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
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
    "aiohttp",
    "requests",
    "websocket-client",
    "platformdirs",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "responses",
]

[project.scripts]
pcompose = "pcompose.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pcompose"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
