"""Domain models for Vote Nearby."""

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class Coordinates:
    """A resolved WGS84 point."""

    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class AddressRecord:
    """Canonical address record supplied by the ETL."""

    id: str
    street: str
    city: str
    state: str
    zip: str


class VoterRecord(BaseModel):
    """Voter registration record as held by the external store.

    Columns beyond the ones declared here (vote history, districts) are kept
    and passed through to the sanitized view.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    voter_id: str
    first_name: str = ""
    last_name: str = ""
    date_of_birth: str = ""
    gender: str = "U"
    residential_address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    party_affiliation: str = "UNR"
    registration_date: str = ""
    voter_status: str = "Active"
    lat: Optional[float] = None
    lng: Optional[float] = None

    @field_validator(
        "first_name",
        "last_name",
        "date_of_birth",
        "residential_address",
        "city",
        "state",
        "zip",
        "registration_date",
        mode="before",
    )
    @classmethod
    def _blank_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def zip5(self) -> str:
        return (self.zip or "")[:5]

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.lat is None or self.lng is None:
            return None
        return Coordinates(lat=self.lat, lng=self.lng)

    def sanitized(self) -> dict[str, Any]:
        """Return the client-safe view: no voter ID, birth year instead of full DOB."""
        data = self.model_dump(exclude={"voter_id", "date_of_birth"})
        data["birth_year"] = self.date_of_birth[:4] if self.date_of_birth else None
        return data


class GeocodedAddress(BaseModel):
    """Row handed back to the ETL once the pipeline has run."""

    id: str
    lat: Optional[float] = None
    lng: Optional[float] = None


class PipelineStats(BaseModel):
    """Summary of a pipeline run."""

    total_addresses: int = 0
    pending: int = 0
    processed: int = 0
    matched: int = 0
    unresolved: int = 0
    failed_batches: int = 0
    network_calls: int = 0
    elapsed_seconds: float = 0.0

    @property
    def match_rate(self) -> float:
        return self.matched / self.processed * 100 if self.processed else 0.0


class NearbyResponse(BaseModel):
    """Result of a proximity search."""

    voters: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False
    address: Optional[str] = None
    zip: Optional[str] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
