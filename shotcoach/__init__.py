"""Stability-triggered photography coaching."""

__version__ = "0.1.0"
