"""Raila Circles: lending path discovery over the Circles trust graph."""

__version__ = "0.1.0"
