"""Nearby voter search.

Given a free-text address or zip code and a state, returns active voters in
the same zip code followed by voters in neighbouring zip codes (same 3-digit
prefix), each ring ranked by distance from the geocoded search point. When
the search point cannot be geocoded the rings are ranked lexically by street
name and house number instead.
"""

import re
from typing import Iterable, Optional

from loguru import logger
from pydantic import BaseModel, field_validator, model_validator

from vote_nearby.address import parse_search_address
from vote_nearby.config import SearchConfig
from vote_nearby.fallback import order_by_street, rank_by_street
from vote_nearby.models import Coordinates, NearbyResponse, VoterRecord
from vote_nearby.proximity import ProximityResult, deduplicate, paginate, rank_by_distance
from vote_nearby.resolver import AddressResolver

MAX_ADDRESS_LENGTH = 200
MIN_ADDRESS_LENGTH = 3

_STATE_RE = re.compile(r"^[A-Za-z]{2}$")
_ZIP5_RE = re.compile(r"^\d{5}$")


class InvalidSearchError(ValueError):
    """Search input that cannot be turned into a query."""


class NearbyRequest(BaseModel):
    """Validated nearby-search input."""

    address: Optional[str] = None
    zip: Optional[str] = None
    state: str
    limit: Optional[int] = None
    offset: Optional[int] = None

    @field_validator("state")
    @classmethod
    def _check_state(cls, value: str) -> str:
        value = value.strip()
        if not _STATE_RE.match(value):
            raise ValueError("Invalid state (must be a 2-letter code)")
        return value.upper()

    @field_validator("address")
    @classmethod
    def _clean_address(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()[:MAX_ADDRESS_LENGTH]
        return value or None

    @field_validator("zip")
    @classmethod
    def _check_zip(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not _ZIP5_RE.match(value):
            raise ValueError("Invalid zip code (must be 5 digits)")
        return value

    @model_validator(mode="after")
    def _require_address_or_zip(self) -> "NearbyRequest":
        if not self.address and not self.zip:
            raise ValueError("Provide an address or zip code")
        if self.address and len(self.address) < MIN_ADDRESS_LENGTH and not self.zip:
            raise ValueError("Address is too short; include a street or zip code")
        return self

    @property
    def is_address_search(self) -> bool:
        return bool(self.address) and len(self.address) >= MIN_ADDRESS_LENGTH


def select_rings(
    voters: Iterable[VoterRecord],
    state: str,
    zipcode: str,
    active_status: str = "Active",
) -> tuple[list[VoterRecord], list[VoterRecord]]:
    """
    Split active voters in ``state`` into same-zip and same-prefix rings.

    Returns:
        ``(same_zip, neighbor_zip)``; the second ring excludes ``zipcode`` itself.
    """
    prefix = zipcode[:3]
    same_zip: list[VoterRecord] = []
    neighbors: list[VoterRecord] = []
    for voter in voters:
        if voter.voter_status != active_status or voter.state.strip().upper() != state:
            continue
        zip5 = voter.zip5
        if zip5 == zipcode:
            same_zip.append(voter)
        elif zip5[:3] == prefix:
            neighbors.append(voter)
    return same_zip, neighbors


class NearbySearch:
    """Answers nearby-voter queries over a target record set."""

    def __init__(self, resolver: AddressResolver, config: Optional[SearchConfig] = None):
        self.resolver = resolver
        self.config = config or SearchConfig()

    def search(self, request: NearbyRequest, voters: Iterable[VoterRecord]) -> NearbyResponse:
        """
        Run a nearby search.

        Args:
            request: Validated search request.
            voters: Target record set (typically one state's voter file).

        Returns:
            NearbyResponse with sanitized voters, nearest first.

        Raises:
            InvalidSearchError: If the address has neither a zip code nor a street name.
        """
        limit = min(max(1, request.limit or self.config.default_limit), self.config.max_limit)
        offset = max(0, request.offset or 0)

        if request.is_address_search:
            return self._search_address(request, voters, limit, offset)
        return self._search_zip(request, voters, limit, offset)

    def _search_address(
        self,
        request: NearbyRequest,
        voters: Iterable[VoterRecord],
        limit: int,
        offset: int,
    ) -> NearbyResponse:
        address = request.address[: self.config.max_address_length]
        parsed = parse_search_address(address)
        search_zip = parsed.zip or request.zip

        if not search_zip and not parsed.street_name:
            raise InvalidSearchError("Could not parse address. Try including a zip code.")

        if not search_zip:
            logger.debug("Address search without a zip code has no candidate rings")
            return NearbyResponse(address=address)

        rings = select_rings(voters, request.state, search_zip, self.config.active_status)
        if not any(rings):
            return NearbyResponse(address=address, zip=search_zip)

        center = self.resolver.resolve_address(address)
        if center is not None:
            ranked = [self._rank_geo(ring, center) for ring in rings]
        else:
            ranked = [rank_by_street(ring, parsed) for ring in rings]

        return self._respond(ranked, limit, offset, center, address=address, zipcode=search_zip)

    def _search_zip(
        self,
        request: NearbyRequest,
        voters: Iterable[VoterRecord],
        limit: int,
        offset: int,
    ) -> NearbyResponse:
        zipcode = request.zip
        rings = select_rings(voters, request.state, zipcode, self.config.active_status)
        if not any(rings):
            return NearbyResponse(zip=zipcode)

        center = self.resolver.resolve_zip(zipcode, request.state)
        if center is not None:
            ranked = [self._rank_geo(ring, center) for ring in rings]
        else:
            ranked = [order_by_street(ring) for ring in rings]

        return self._respond(ranked, limit, offset, center, zipcode=zipcode)

    def _rank_geo(self, ring: list[VoterRecord], center: Coordinates) -> list[ProximityResult]:
        return rank_by_distance(
            ring,
            center,
            tie_epsilon=self.config.tie_epsilon_meters,
            missing_distance=self.config.missing_distance,
        )

    def _respond(
        self,
        rings: list[list[ProximityResult]],
        limit: int,
        offset: int,
        center: Optional[Coordinates],
        address: Optional[str] = None,
        zipcode: Optional[str] = None,
    ) -> NearbyResponse:
        for ring_index, ring in enumerate(rings):
            for result in ring:
                result.ring = ring_index

        # Same-zip ring first; dedup keeps its copy of any repeated voter
        ordered = deduplicate([result for ring in rings for result in ring])
        page, total, has_more = paginate(ordered, offset, limit)

        logger.debug(
            "Nearby search: {} candidates, {} returned, geocoded={}",
            total,
            len(page),
            center is not None,
        )

        return NearbyResponse(
            voters=[result.record.sanitized() for result in page],
            total=total,
            has_more=has_more,
            address=address,
            zip=zipcode,
            center_lat=center.lat if center else None,
            center_lng=center.lng if center else None,
        )
