"""HTTP bridge between a pueue daemon and its web UI."""

from .__version__ import __version__

__all__ = ["__version__"]
