"""Tests for the persistent geocode cache."""

import json
from pathlib import Path

from vote_nearby.cache import GeocodeCache
from vote_nearby.models import Coordinates

POINT = Coordinates(lat=35.22, lng=-80.84)


class TestLoad:
    """Tests for GeocodeCache.load."""

    def test_missing_file_is_empty(self, cache_path: Path):
        """Test that a missing file starts an empty cache."""
        cache = GeocodeCache.load(cache_path)

        assert len(cache) == 0
        assert cache.path == cache_path

    def test_corrupt_file_is_empty(self, cache_path: Path):
        """Test that unparseable JSON is treated as empty."""
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text("{not json", encoding="utf-8")

        assert len(GeocodeCache.load(cache_path)) == 0

    def test_non_object_file_is_empty(self, cache_path: Path):
        """Test that a JSON array is treated as empty."""
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text("[1, 2]", encoding="utf-8")

        assert len(GeocodeCache.load(cache_path)) == 0

    def test_invalid_entries_dropped(self, cache_path: Path):
        """Test that only coordinate objects and nulls survive loading."""
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(
            json.dumps(
                {
                    "good": {"lat": 35.22, "lng": -80.84},
                    "null": None,
                    "bad": {"lat": "x"},
                    "worse": 7,
                }
            ),
            encoding="utf-8",
        )

        cache = GeocodeCache.load(cache_path)

        assert sorted(cache.keys()) == ["good", "null"]
        assert cache.get("good") == POINT
        assert "null" in cache
        assert not cache.is_resolved("null")


class TestMerge:
    """Tests for GeocodeCache.merge."""

    def test_null_is_recorded(self, empty_cache: GeocodeCache):
        """Test that a no-match result is distinct from a missing key."""
        empty_cache.merge({"a": None})

        assert "a" in empty_cache
        assert "b" not in empty_cache
        assert empty_cache.get("a") is None

    def test_null_never_overwrites_coordinates(self, empty_cache: GeocodeCache):
        """Test monotonic improvement of entries."""
        empty_cache.merge({"a": POINT})

        changed = empty_cache.merge({"a": None})

        assert changed == 0
        assert empty_cache.get("a") == POINT

    def test_null_upgraded_to_coordinates(self, empty_cache: GeocodeCache):
        """Test that a later match replaces an earlier null."""
        empty_cache.merge({"a": None})

        assert empty_cache.merge({"a": POINT}) == 1
        assert empty_cache.is_resolved("a")

    def test_unchanged_entries_not_counted(self, empty_cache: GeocodeCache):
        """Test that re-merging the same value is not a change."""
        empty_cache.merge({"a": POINT, "b": None})

        assert empty_cache.merge({"a": POINT, "b": None}) == 0

    def test_stats(self, empty_cache: GeocodeCache):
        """Test resolved and unresolved counts."""
        empty_cache.merge({"a": POINT, "b": None, "c": None})

        assert empty_cache.stats() == {"total": 3, "resolved": 1, "unresolved": 2}


class TestFlush:
    """Tests for GeocodeCache.flush and flush_if_due."""

    def test_flush_round_trip_keeps_nulls(self, empty_cache: GeocodeCache, cache_path: Path):
        """Test that nulls and coordinates persist across a reload."""
        empty_cache.merge({"a": POINT, "b": None})
        empty_cache.flush()

        data = json.loads(cache_path.read_text(encoding="utf-8"))
        assert data == {"a": {"lat": 35.22, "lng": -80.84}, "b": None}

        reloaded = GeocodeCache.load(cache_path)
        assert reloaded.get("a") == POINT
        assert "b" in reloaded

    def test_flush_leaves_no_temp_files(self, empty_cache: GeocodeCache, cache_path: Path):
        """Test that the temporary file is moved into place."""
        empty_cache.merge({"a": POINT})
        empty_cache.flush()
        empty_cache.flush()

        assert [p.name for p in cache_path.parent.iterdir()] == [cache_path.name]

    def test_flush_if_due_requires_changes(self, empty_cache: GeocodeCache, cache_path: Path):
        """Test that a clean cache is not rewritten."""
        assert empty_cache.flush_if_due(0.0) is False
        assert not cache_path.exists()

        empty_cache.merge({"a": None})

        assert empty_cache.flush_if_due(0.0) is True
        assert empty_cache.flush_if_due(0.0) is False

    def test_flush_if_due_waits_for_interval(self, empty_cache: GeocodeCache):
        """Test that a long interval postpones the checkpoint."""
        empty_cache.merge({"a": None})

        assert empty_cache.flush_if_due(3600.0) is False
