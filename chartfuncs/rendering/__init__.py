"""Template rendering modules."""

from .renderer import ResourceLookup, TemplateRenderer

__all__ = ["ResourceLookup", "TemplateRenderer"]
