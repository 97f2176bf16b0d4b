"""A Cortex-M0+ board model: peripherals, image loaders, semihosting and a bootloader."""

__version__ = "0.1.0"