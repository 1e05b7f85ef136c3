"""Bulk copy map tiles from tile sources into MBTiles archives."""

__version__ = "0.1.0"
