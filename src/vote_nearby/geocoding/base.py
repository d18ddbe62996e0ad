"""Abstract base classes for geocoding services."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from vote_nearby.models import AddressRecord, Coordinates


class GeocodeServiceType(Enum):
    """Types of geocoding services."""

    BATCH = "batch"  # Processes multiple addresses at once
    INDIVIDUAL = "individual"  # One address per request


class GeocodeQuality(Enum):
    """Match classification reported by a provider for one address."""

    EXACT = "exact"
    NON_EXACT = "non_exact"
    TIE = "tie"
    NO_MATCH = "no_match"
    FAILED = "failed"

    @property
    def is_match(self) -> bool:
        return self in (GeocodeQuality.EXACT, GeocodeQuality.NON_EXACT)


class GeocodingProviderError(Exception):
    """Transport or service failure talking to a geocoding provider.

    Raised for timeouts, non-2xx responses, connection errors and 200
    bodies of the wrong shape. Callers treat every instance as transient.
    """

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


@dataclass
class BatchJob:
    """Ordered slice of unique addresses submitted to a provider together."""

    index: int
    entries: list[tuple[str, AddressRecord]] = field(default_factory=list)

    def local_id(self, position: int) -> str:
        """Provider-side row id for the entry at ``position``."""
        return f"{self.index}-{position}"

    def __len__(self) -> int:
        return len(self.entries)


class GeocodeService(ABC):
    """Abstract base class for all geocoding services."""

    def __init__(self, config: Any):
        """Initialize the service with configuration.

        Args:
            config: Settings object containing service-specific configuration
        """
        self.config = config

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Unique identifier for this service."""
        pass

    @property
    @abstractmethod
    def service_type(self) -> GeocodeServiceType:
        """Whether this service supports batch or individual processing."""
        pass

    @abstractmethod
    def prepare_addresses(self, job: BatchJob) -> Any:
        """Format a batch of addresses for this service's API.

        Args:
            job: Batch of addresses keyed by provider local id

        Returns:
            Service-specific prepared data structure
        """
        pass

    @abstractmethod
    def submit_request(self, prepared_data: Any) -> Any:
        """Submit geocoding request to service API.

        Args:
            prepared_data: Data prepared by prepare_addresses()

        Returns:
            Raw response from the service

        Raises:
            GeocodingProviderError: On timeout, non-2xx status or connection failure
        """
        pass

    @abstractmethod
    def parse_response(self, response: Any) -> dict[str, Coordinates]:
        """Parse service response into coordinates keyed by local id.

        Only confidently matched rows appear in the result.

        Args:
            response: Raw response from submit_request()

        Returns:
            Mapping of provider local id to Coordinates
        """
        pass

    @abstractmethod
    def geocode_address(self, query: str) -> Optional[Coordinates]:
        """Geocode a single free-text address.

        Args:
            query: One-line address or place query

        Returns:
            Coordinates, or None when the provider found no match

        Raises:
            GeocodingProviderError: On timeout, non-2xx status or connection failure
        """
        pass

    def geocode_batch(self, job: BatchJob) -> dict[str, Coordinates]:
        """Main workflow: prepare → submit → parse.

        Args:
            job: Batch of addresses

        Returns:
            Mapping of provider local id to Coordinates for matched rows
        """
        prepared = self.prepare_addresses(job)
        response = self.submit_request(prepared)
        return self.parse_response(response)
