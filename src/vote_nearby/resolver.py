"""Query-time geocoding of a single search address or zip."""

import threading
from typing import Optional

from loguru import logger

from vote_nearby.geocoding.base import GeocodeService, GeocodingProviderError
from vote_nearby.models import Coordinates


class LookupCache:
    """Bounded in-memory cache of query -> Coordinates (or None for no match)."""

    def __init__(self, max_size: int = 1024):
        self.max_size = max_size
        self._entries: dict[str, Optional[Coordinates]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[bool, Optional[Coordinates]]:
        """Return ``(hit, value)``; a hit may carry a cached None."""
        with self._lock:
            if key in self._entries:
                return True, self._entries[key]
            return False, None

    def put(self, key: str, value: Optional[Coordinates]) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                # Oldest insertion goes first
                self._entries.pop(next(iter(self._entries)))
            self._entries[key] = value

    def __len__(self) -> int:
        return len(self._entries)


class AddressResolver:
    """
    Geocodes search input on demand for the proximity search.

    Provider failures are logged and reported as None so callers can fall
    back to lexical ranking; they are not cached, so the next request tries
    again. Confirmed no-match answers are cached.
    """

    def __init__(self, service: GeocodeService, cache: Optional[LookupCache] = None):
        self.service = service
        self.cache = cache if cache is not None else LookupCache()

    def resolve_address(self, address: str) -> Optional[Coordinates]:
        """Geocode a free-text address."""
        return self._resolve(address)

    def resolve_zip(self, zipcode: str, state: Optional[str] = None) -> Optional[Coordinates]:
        """Geocode the center of a zip code, optionally scoped to a state."""
        query = f"{zipcode}, {state}, USA" if state else f"{zipcode}, USA"
        return self._resolve(query)

    def _resolve(self, query: str) -> Optional[Coordinates]:
        key = " ".join(query.split()).casefold()
        if not key:
            return None

        hit, cached = self.cache.get(key)
        if hit:
            logger.debug("Lookup cache hit for query")
            return cached

        try:
            coordinates = self.service.geocode_address(query)
        except GeocodingProviderError as e:
            logger.warning("Query geocoding unavailable, using lexical ranking: {}", str(e))
            return None

        self.cache.put(key, coordinates)
        return coordinates
