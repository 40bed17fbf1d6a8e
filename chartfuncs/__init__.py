"""Data interchange and filter functions for text templates."""

__version__ = "1.0.0"
