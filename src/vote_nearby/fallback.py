"""Lexical ranking used when no search coordinate is available."""

from typing import Sequence

from vote_nearby.address import ParsedAddress, extract_street_name, house_number, street_sort_key
from vote_nearby.models import VoterRecord
from vote_nearby.proximity import ProximityResult

EXACT_STREET_SCORE = 10_000
HOUSE_NUMBER_BONUS = 5_000
HOUSE_NUMBER_PENALTY = 10  # Bonus lost per house number of separation
PARTIAL_STREET_SCORE = 5_000
BASELINE_SCORE = 1


def street_score(record: VoterRecord, search: ParsedAddress) -> float:
    """
    Score how close ``record`` lives to the searched street address.

    Same street scores highest, plus a bonus that shrinks as the house
    numbers move apart. A street name contained in the other scores lower.
    Everything else gets the baseline.
    """
    street = extract_street_name(record.residential_address)
    target = search.street_name

    if target and street == target:
        score = EXACT_STREET_SCORE
        searched = search.house_number
        number = house_number(record.residential_address)
        if searched is not None and number is not None:
            score += max(0, HOUSE_NUMBER_BONUS - abs(number - searched) * HOUSE_NUMBER_PENALTY)
        return score

    if target and street and (target in street or street in target):
        return PARTIAL_STREET_SCORE

    return BASELINE_SCORE


def rank_by_street(
    candidates: Sequence[VoterRecord],
    search: ParsedAddress,
) -> list[ProximityResult]:
    """
    Order candidates by lexical closeness to the search address.

    Ties are broken by street name, house number and voter ID, so the
    ordering is total and repeatable without any coordinates.
    """
    results = [
        ProximityResult(record=record, score=street_score(record, search))
        for record in candidates
    ]
    results.sort(
        key=lambda r: (
            -r.score,
            *street_sort_key(r.record.residential_address),
            r.record.voter_id,
        )
    )
    return results


def order_by_street(candidates: Sequence[VoterRecord]) -> list[ProximityResult]:
    """Group candidates by street, then ascending house number."""
    results = [ProximityResult(record=record) for record in candidates]
    results.sort(key=lambda r: (*street_sort_key(r.record.residential_address), r.record.voter_id))
    return results
