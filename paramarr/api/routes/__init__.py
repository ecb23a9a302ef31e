"""API route modules."""

from paramarr.api.routes import cache, resolve, sources

__all__ = ["cache", "resolve", "sources"]
