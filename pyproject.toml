[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "virtualos"
version = "1.0.0"
description = "Embedded runtime building blocks: a best-fit buffer pool, device registry, descriptor-based device access and a Modbus RTU slave"
requires-python = ">=3.10"
dependencies = []
keywords = ["embedded", "allocator", "buffer-pool", "modbus", "rtu", "device-driver"]
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
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["virtualos"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
strict = true
