"""Reliable page retrieval and offline asset caching."""

__version__ = "0.1.0"
