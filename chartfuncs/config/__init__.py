"""Configuration loading modules."""

from .loaders import ConfigLoader, RenderSettings

__all__ = ["ConfigLoader", "RenderSettings"]
