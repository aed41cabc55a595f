[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tacalloc"
version = "0.1.0"
description = "Three-address code, basic blocks, liveness analysis and graph-colouring register allocation"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "three-address code", "liveness", "register allocation", "graph coloring"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tacalloc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
