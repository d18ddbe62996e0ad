"""Geocoding service implementations."""

# Services register on import
from . import census  # noqa: F401
from . import nominatim  # noqa: F401

__all__ = ["census", "nominatim"]
