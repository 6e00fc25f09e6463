"""Lever data export - rate-limited fetch engine."""

__version__ = "0.1.0"
