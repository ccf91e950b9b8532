"""Marketplace realtime messaging server."""

__version__ = '1.0.0'
