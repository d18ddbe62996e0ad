"""Distance ranking, deduplication and pagination of voter candidates."""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

from vote_nearby.address import street_sort_key
from vote_nearby.models import Coordinates, VoterRecord

EARTH_RADIUS_METERS = 6_371_000
DEFAULT_TIE_EPSILON_METERS = 5.0
MISSING_DISTANCE = 999_999_999.0

T = TypeVar("T")


@dataclass
class ProximityResult:
    """A candidate voter with its ranking value. Never persisted."""

    record: VoterRecord
    distance: Optional[float] = None  # Meters from the search center
    score: Optional[float] = None  # Lexical fallback score, higher is closer
    ring: int = 0  # 0 for the searched zip, 1 for neighbouring zips


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two lat/lng points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _street_key(result: ProximityResult) -> tuple[str, int]:
    return street_sort_key(result.record.residential_address)


def rank_by_distance(
    candidates: Sequence[VoterRecord],
    center: Coordinates,
    tie_epsilon: float = DEFAULT_TIE_EPSILON_METERS,
    missing_distance: float = MISSING_DISTANCE,
) -> list[ProximityResult]:
    """
    Order candidates by distance from ``center``.

    Candidates without coordinates get ``missing_distance`` and sort last.
    Runs of candidates whose distances lie within ``tie_epsilon`` of the
    first member of the run are treated as ties and ordered by street name,
    then house number.

    Args:
        candidates: Voter records to rank.
        center: Search center.
        tie_epsilon: Distance in meters under which two candidates tie.
        missing_distance: Distance assigned to candidates without coordinates.

    Returns:
        ProximityResults, nearest first.
    """
    results = []
    for record in candidates:
        point = record.coordinates
        if point is None:
            distance = missing_distance
        else:
            distance = haversine_distance(center.lat, center.lng, point.lat, point.lng)
        results.append(ProximityResult(record=record, distance=distance))

    results.sort(key=lambda r: (r.distance, _street_key(r), r.record.voter_id))

    ranked: list[ProximityResult] = []
    group: list[ProximityResult] = []
    for result in results:
        if group and result.distance - group[0].distance > tie_epsilon:
            ranked.extend(sorted(group, key=_tie_key))
            group = []
        group.append(result)
    ranked.extend(sorted(group, key=_tie_key))
    return ranked


def _tie_key(result: ProximityResult) -> tuple:
    return (*_street_key(result), result.distance, result.record.voter_id)


def dedup_key(record: VoterRecord) -> tuple[str, str, str]:
    return (
        record.first_name.strip().casefold(),
        record.last_name.strip().casefold(),
        " ".join(record.residential_address.split()).casefold(),
    )


def deduplicate(results: Sequence[ProximityResult]) -> list[ProximityResult]:
    """Keep the first result for each (first name, last name, address)."""
    seen: set[tuple[str, str, str]] = set()
    unique = []
    for result in results:
        key = dedup_key(result.record)
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


def paginate(items: Sequence[T], offset: int, limit: int) -> tuple[list[T], int, bool]:
    """
    Slice a fully ranked list.

    Returns:
        ``(page, total, has_more)`` where ``has_more`` is ``offset + limit < total``.
    """
    total = len(items)
    return list(items[offset : offset + limit]), total, offset + limit < total
