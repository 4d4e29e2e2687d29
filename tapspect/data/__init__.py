"""Exporting captured data."""

from .exporter import export_store

__all__ = ['export_store']
