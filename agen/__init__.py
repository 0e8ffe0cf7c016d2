"""agen: local package manager for agent, skill and workflow plugins."""

from agen.__version__ import __version__

__all__ = ["__version__"]
