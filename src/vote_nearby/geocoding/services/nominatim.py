"""Nominatim (OpenStreetMap) geocoding service implementation."""

import threading
import time
from typing import Any, Optional

import httpx
from loguru import logger

from vote_nearby.config import Settings
from vote_nearby.models import Coordinates

from ..base import (
    BatchJob,
    GeocodeService,
    GeocodeServiceType,
    GeocodingProviderError,
)
from ..registry import GeocodeServiceRegistry


@GeocodeServiceRegistry.register
class NominatimGeocoder(GeocodeService):
    """Nominatim (OpenStreetMap) geocoding service.

    Nominatim is a free, open-source geocoding service based on OpenStreetMap data.
    Rate limit: 1 request per second (rate_limit_delay), shared by every
    thread using the same instance.
    Requires: email address in configuration (usage policy requirement).
    """

    def __init__(self, config: Settings):
        """Initialize Nominatim geocoder with configuration.

        Args:
            config: Application settings containing nominatim configuration
        """
        super().__init__(config)
        self.nominatim_config = config.geocode_services.nominatim
        self._throttle_lock = threading.Lock()
        self._next_request_at = 0.0

    @property
    def service_name(self) -> str:
        """Unique identifier for this service."""
        return "nominatim"

    @property
    def service_type(self) -> GeocodeServiceType:
        """Nominatim requires individual requests (not batch)."""
        return GeocodeServiceType.INDIVIDUAL

    @property
    def user_agent(self) -> str:
        if self.nominatim_config.email:
            return f"VoteNearby/1.0 ({self.nominatim_config.email})"
        return "VoteNearby/1.0 (voter proximity search)"

    def prepare_addresses(self, job: BatchJob) -> list[dict[str, str]]:
        """Format a batch as one Nominatim query per address.

        Args:
            job: Batch of addresses to geocode

        Returns:
            List of ``{"local_id", "query"}`` dictionaries
        """
        prepared = []
        for position, (_, record) in enumerate(job.entries):
            query = f"{record.street}, {record.city}, {record.state} {record.zip[:5]}".strip()
            prepared.append({"local_id": job.local_id(position), "query": query})

        logger.debug("Prepared {} addresses for Nominatim", len(prepared))
        return prepared

    def submit_request(self, prepared_data: list[dict[str, str]]) -> list[dict[str, Any]]:
        """Submit rate-limited individual requests to Nominatim.

        Any failed request fails the whole batch so the caller's retry policy
        applies to it.

        Args:
            prepared_data: List of prepared address dictionaries

        Returns:
            List of ``{"local_id", "response"}`` dictionaries
        """
        results = []

        with httpx.Client(
            timeout=self.nominatim_config.timeout,
            headers={"User-Agent": self.user_agent},
        ) as client:
            for address in prepared_data:
                results.append(
                    {
                        "local_id": address["local_id"],
                        "response": self._search(client, address["query"]),
                    }
                )

        logger.debug("Completed {} Nominatim requests", len(results))
        return results

    def parse_response(self, response: list[dict[str, Any]]) -> dict[str, Coordinates]:
        """Parse Nominatim responses into coordinates keyed by local id.

        Args:
            response: List of raw responses from submit_request()

        Returns:
            Mapping of local id to Coordinates for matched rows
        """
        results = {}
        for item in response:
            coordinates = self._first_match(item["response"])
            if coordinates is not None:
                results[item["local_id"]] = coordinates
        return results

    def geocode_address(self, query: str) -> Optional[Coordinates]:
        """Geocode a single free-text address.

        Args:
            query: Free-text address or place

        Returns:
            Coordinates of the top result, or None

        Raises:
            GeocodingProviderError: On timeout, HTTP error status, connection
                failure or a response that is not a list of results
        """
        with httpx.Client(
            timeout=self.nominatim_config.timeout,
            headers={"User-Agent": self.user_agent},
        ) as client:
            return self._first_match(self._search(client, query))

    def _search(self, client: httpx.Client, query: str) -> list[dict[str, Any]]:
        params = {
            "q": query,
            "format": "json",
            "limit": 1,
            "countrycodes": self.nominatim_config.country,
        }

        self._throttle()
        try:
            response = client.get(f"{self.nominatim_config.base_url}/search", params=params)
            response.raise_for_status()
            data = response.json()

        except httpx.TimeoutException as e:
            logger.warning("Nominatim request timed out after {}s", self.nominatim_config.timeout)
            raise GeocodingProviderError(self.service_name, "Request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning("Nominatim returned HTTP {}", e.response.status_code)
            raise GeocodingProviderError(
                self.service_name,
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Nominatim transport error: {}", str(e))
            raise GeocodingProviderError(self.service_name, f"Transport error: {e}") from e
        except ValueError as e:
            raise GeocodingProviderError(self.service_name, "Response was not valid JSON") from e

        if not isinstance(data, list):
            logger.warning("Nominatim returned unexpected payload: {}", data)
            raise GeocodingProviderError(self.service_name, "Response was not a list of results")
        return data

    def _throttle(self) -> None:
        """Block until rate_limit_delay has passed since the previous request."""
        with self._throttle_lock:
            wait = self._next_request_at - time.monotonic()
            if wait > 0:
                time.sleep(wait)
            self._next_request_at = time.monotonic() + self.nominatim_config.rate_limit_delay

    @staticmethod
    def _first_match(data: list[Any]) -> Optional[Coordinates]:
        if not data:
            return None
        match = data[0]
        try:
            return Coordinates(lat=float(match["lat"]), lng=float(match["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("Nominatim result without usable coordinates: {}", match)
            return None
