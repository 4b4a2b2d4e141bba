"""Cadence core: X account linking, persona analysis and reply suggestions."""

__version__ = "0.1.0"
