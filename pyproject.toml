[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "moonbow"
version = "0.1.0"
description = "A Cortex-M0+ board model: peripherals, a flash controller, ELF and Intel HEX loaders, semihosting and a small bootloader"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "emulator",
    "cortex-m",
    "microcontroller",
    "bootloader",
    "intel-hex",
    "elf",
    "lz4",
    "semihosting",
    "flash",
]
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
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["moonbow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
