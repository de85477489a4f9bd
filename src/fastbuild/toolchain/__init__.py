"""Compiler toolchain management and resolution."""

from .resolver import ToolchainResolver, heuristic_host_triple
from .rustup import RustupManager

__all__ = ["RustupManager", "ToolchainResolver", "heuristic_host_triple"]
