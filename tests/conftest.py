"""Pytest configuration and fixtures for Vote Nearby tests."""

from pathlib import Path
from typing import Callable, Optional

import pytest

from vote_nearby.cache import GeocodeCache
from vote_nearby.config import PipelineConfig, Settings
from vote_nearby.models import AddressRecord, VoterRecord


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Provide test settings with files under a temporary directory.

    Returns:
        Settings instance configured for testing.
    """
    return Settings(
        log_level="DEBUG",
        log_file=str(tmp_path / "logs" / "test.log"),
        cache_file=str(tmp_path / "geocode-cache.json"),
        pipeline=PipelineConfig(
            batch_size=2,
            concurrency=2,
            max_retries=2,
            retry_delay_base=0.0,
            checkpoint_interval=0.0,
        ),
    )


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    """Location for a geocode cache file."""
    return tmp_path / "cache" / "geocode-cache.json"


@pytest.fixture
def empty_cache(cache_path: Path) -> GeocodeCache:
    """A fresh cache bound to a temporary file."""
    return GeocodeCache(cache_path)


@pytest.fixture
def make_address() -> Callable[..., AddressRecord]:
    """Factory for AddressRecords with sensible defaults."""

    def factory(
        id: str = "1",
        street: str = "100 Main St",
        city: str = "Charlotte",
        state: str = "NC",
        zip: str = "28202",
    ) -> AddressRecord:
        return AddressRecord(id=id, street=street, city=city, state=state, zip=zip)

    return factory


@pytest.fixture
def make_voter() -> Callable[..., VoterRecord]:
    """
    Factory for VoterRecords.

    Coordinates default to None so tests opt in to geocoded voters.
    """
    counter = {"n": 0}

    def factory(
        residential_address: str = "100 Main St",
        zip: str = "28202",
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        **overrides,
    ) -> VoterRecord:
        counter["n"] += 1
        data = {
            "voter_id": f"V{counter['n']:04d}",
            "first_name": f"First{counter['n']}",
            "last_name": "Voter",
            "date_of_birth": "1980-05-17",
            "residential_address": residential_address,
            "city": "Charlotte",
            "state": "NC",
            "zip": zip,
            "lat": lat,
            "lng": lng,
        }
        data.update(overrides)
        return VoterRecord(**data)

    return factory
