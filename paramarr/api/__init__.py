"""HTTP surface for test runners and other hosts."""

from paramarr.api.app import API_PREFIX, create_app

__all__ = ["API_PREFIX", "create_app"]
