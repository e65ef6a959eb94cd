[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "a2hmarket"
version = "0.1.0"
description = "Client library for the A2H Market agent platform: signed HTTP API, device authorization, lease control and MQTT messaging."
requires-python = ">=3.10"
keywords = ["a2hmarket", "agent", "mqtt", "hmac", "api-client", "a2a"]
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
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "requests>=2.28",
    "paho-mqtt>=2.0",
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["a2hmarket"]

[tool.hatch.build.targets.sdist]
include = ["a2hmarket", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
