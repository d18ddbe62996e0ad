"""Tests for the geocoding service registry."""

import pytest

from vote_nearby.config import Settings
from vote_nearby.geocoding import GeocodeServiceRegistry, GeocodeServiceType
from vote_nearby.geocoding.services.census import CensusGeocoder
from vote_nearby.geocoding.services.nominatim import NominatimGeocoder


class TestGeocodeServiceRegistry:
    """Tests for GeocodeServiceRegistry."""

    def test_registered_services(self):
        """Test that importing the package registers both providers."""
        assert GeocodeServiceRegistry.list_services() == ["census", "nominatim"]

    def test_get_service(self, test_settings: Settings):
        """Test instantiating services by name."""
        assert isinstance(GeocodeServiceRegistry.get_service("census", test_settings), CensusGeocoder)
        assert isinstance(
            GeocodeServiceRegistry.get_service("nominatim", test_settings), NominatimGeocoder
        )

    def test_unknown_service(self, test_settings: Settings):
        """Test that an unknown name lists the available services."""
        with pytest.raises(ValueError, match="Available services: census, nominatim"):
            GeocodeServiceRegistry.get_service("bogus", test_settings)

    def test_list_services_by_type(self):
        """Test filtering providers by request style."""
        assert GeocodeServiceRegistry.list_services(GeocodeServiceType.BATCH) == ["census"]
        assert GeocodeServiceRegistry.list_services(GeocodeServiceType.INDIVIDUAL) == ["nominatim"]
        assert GeocodeServiceRegistry.service_type("nominatim") is GeocodeServiceType.INDIVIDUAL

    def test_get_service_with_required_type(self, test_settings: Settings):
        """Test that a provider of the wrong request style is rejected."""
        census = GeocodeServiceRegistry.get_service(
            "census", test_settings, service_type=GeocodeServiceType.BATCH
        )
        assert isinstance(census, CensusGeocoder)

        with pytest.raises(ValueError, match="not a batch service. Batch services: census"):
            GeocodeServiceRegistry.get_service(
                "nominatim", test_settings, service_type=GeocodeServiceType.BATCH
            )

    def test_duplicate_name_rejected(self):
        """Test that a second class cannot take a registered name."""

        class OtherCensus(CensusGeocoder):
            pass

        with pytest.raises(ValueError, match="already registered by CensusGeocoder"):
            GeocodeServiceRegistry.register(OtherCensus)

        assert GeocodeServiceRegistry.register(CensusGeocoder) is CensusGeocoder
