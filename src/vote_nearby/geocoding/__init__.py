"""Geocoding services for Vote Nearby.

Providers register themselves with ``GeocodeServiceRegistry`` when the
``services`` subpackage is imported.
"""

from .base import (
    BatchJob,
    GeocodeQuality,
    GeocodeService,
    GeocodeServiceType,
    GeocodingProviderError,
)
from .registry import GeocodeServiceRegistry
from . import services  # noqa: F401

__all__ = [
    "BatchJob",
    "GeocodeQuality",
    "GeocodeService",
    "GeocodeServiceType",
    "GeocodingProviderError",
    "GeocodeServiceRegistry",
]
