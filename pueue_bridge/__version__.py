"""Version information for the Pueue bridge."""

__version__ = "0.3.0"
