"""Cadence token exchange: the only holder of the X OAuth client secret."""

__version__ = "0.1.0"
