"""Concrete toolchain implementations."""

from .cargo import CargoToolchain

__all__ = ["CargoToolchain"]
