[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qlexec"
version = "0.1.0"
description = "A stack-based instruction executor for a small dynamic scripting language"
requires-python = ">=3.10"
dependencies = []
keywords = ["interpreter", "bytecode", "virtual-machine", "stack-machine", "scripting"]
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
    "Topic :: Software Development :: Interpreters",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["qlexec"]

[tool.pytest.ini_options]
addopts = "-ra"
