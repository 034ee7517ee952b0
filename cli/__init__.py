"""Command line entry point for the smart city API server.

The Typer application lives in ``cli.app``; the package does not re-export it.
"""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)


__all__ = []
