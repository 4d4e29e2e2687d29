"""Tapspect - console and network inspector for pages it does not own."""

__version__ = "0.1.0"
