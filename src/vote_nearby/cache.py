"""Persistent address -> coordinate cache for the batch pipeline."""

import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from vote_nearby.models import Coordinates


class GeocodeCache:
    """
    Durable map of AddressKey to Coordinates or None.

    A key mapped to None means geocoding was attempted and produced no
    confident match; a missing key means it was never attempted. Both states
    are persisted.

    Writes go through ``merge`` and never replace real coordinates with None.
    Only one pipeline process may write a given cache file.
    """

    def __init__(self, path: Path | str, entries: Optional[dict[str, Optional[Coordinates]]] = None):
        self.path = Path(path)
        self._entries: dict[str, Optional[Coordinates]] = dict(entries or {})
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._dirty = False
        self.last_flush = time.monotonic()

    @classmethod
    def load(cls, path: Path | str) -> "GeocodeCache":
        """
        Load a cache file, treating a missing or unreadable file as empty.

        Args:
            path: Location of the JSON cache file.

        Returns:
            GeocodeCache bound to ``path``.
        """
        path = Path(path)
        if not path.exists():
            logger.info("No geocode cache at {}, starting empty", path)
            return cls(path)

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Geocode cache {} is unreadable ({}), starting empty", path, str(e))
            return cls(path)

        if not isinstance(raw, dict):
            logger.warning("Geocode cache {} is not a JSON object, starting empty", path)
            return cls(path)

        entries: dict[str, Optional[Coordinates]] = {}
        invalid = 0
        for key, value in raw.items():
            if value is None:
                entries[key] = None
                continue
            coordinates = _decode(value)
            if coordinates is None:
                invalid += 1
                continue
            entries[key] = coordinates

        if invalid:
            logger.warning("Dropped {} invalid entries from geocode cache {}", invalid, path)

        logger.info("Loaded {} cached entries from {}", len(entries), path)
        return cls(path, entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[Coordinates]:
        return self._entries.get(key)

    def keys(self) -> Iterable[str]:
        return list(self._entries.keys())

    def is_resolved(self, key: str) -> bool:
        """True when ``key`` has real coordinates."""
        return self._entries.get(key) is not None

    def merge(self, results: Mapping[str, Optional[Coordinates]]) -> int:
        """
        Merge geocoding results into the cache.

        Args:
            results: AddressKey to Coordinates, or None for no confident match.

        Returns:
            Number of entries created or changed.
        """
        changed = 0
        with self._lock:
            for key, coordinates in results.items():
                current = self._entries.get(key)
                if coordinates is None and current is not None:
                    # Keep the coordinates from an earlier successful run
                    continue
                if key in self._entries and current == coordinates:
                    continue
                self._entries[key] = coordinates
                changed += 1
            if changed:
                self._dirty = True
        return changed

    def snapshot(self) -> dict[str, Optional[dict[str, float]]]:
        """JSON-ready copy of the cache contents."""
        with self._lock:
            return {
                key: coordinates.to_dict() if coordinates is not None else None
                for key, coordinates in self._entries.items()
            }

    def flush(self) -> None:
        """
        Write the cache to disk.

        The file is written to a temporary sibling and moved into place, so a
        crash mid-write leaves the previous checkpoint intact. Concurrent
        callers are serialized.
        """
        with self._flush_lock:
            data = self.snapshot()
            self.path.parent.mkdir(parents=True, exist_ok=True)

            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            self._dirty = False
            self.last_flush = time.monotonic()
            logger.debug("Flushed {} geocode cache entries to {}", len(data), self.path)

    def flush_if_due(self, interval: float) -> bool:
        """
        Flush when there are unsaved changes and ``interval`` seconds have passed.

        Returns:
            True if a flush happened.
        """
        if not self._dirty or time.monotonic() - self.last_flush < interval:
            return False
        self.flush()
        return True

    def stats(self) -> dict[str, int]:
        """Counts of total, resolved and resolved-null entries."""
        with self._lock:
            resolved = sum(1 for value in self._entries.values() if value is not None)
            return {
                "total": len(self._entries),
                "resolved": resolved,
                "unresolved": len(self._entries) - resolved,
            }


def _decode(value: Any) -> Optional[Coordinates]:
    if not isinstance(value, dict):
        return None
    lat = value.get("lat")
    lng = value.get("lng")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    return Coordinates(lat=float(lat), lng=float(lng))
