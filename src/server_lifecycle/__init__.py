"""Lifecycle control for externally spawned application-server processes."""

from .__version__ import __version__

__all__ = ["__version__"]
