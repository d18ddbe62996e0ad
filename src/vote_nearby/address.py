"""Address normalization and parsing helpers.

These functions are shared by the batch pipeline (cache keys) and the
proximity search (street grouping and the lexical fallback).
"""

import re
from dataclasses import dataclass
from typing import Optional

STREET_SUFFIXES = (
    "st",
    "street",
    "ave",
    "avenue",
    "blvd",
    "boulevard",
    "dr",
    "drive",
    "ln",
    "lane",
    "ct",
    "court",
    "way",
    "rd",
    "road",
    "pl",
    "place",
    "cir",
    "circle",
    "ter",
    "terrace",
    "trl",
    "trail",
    "pkwy",
    "parkway",
    "hwy",
    "highway",
    "loop",
)

UNIT_MARKERS = ("apt", "unit", "#", "suite", "ste")

_ZIP_RE = re.compile(r"\b(\d{5})\b")
_SUFFIX_RE = re.compile(r"\b(?:" + "|".join(STREET_SUFFIXES) + r")\b\.?\s*$", re.IGNORECASE)
_UNIT_RE = "|".join(re.escape(marker) for marker in UNIT_MARKERS)
_STREET_RE = re.compile(
    r"^(\d+)\s+(.+?)(?:,|\s+(?:" + _UNIT_RE + r")|\s+\d{5}|$)",
    re.IGNORECASE,
)
_LEADING_NUMBER_RE = re.compile(r"^\s*(\d+)")
_UNIT_TAIL_RE = re.compile(r"(?:,|\s+(?:apt|unit|suite|ste)\b|\s*#).*$", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedAddress:
    """Components extracted from a free-text search address."""

    number: str
    street_name: str
    zip: Optional[str]

    @property
    def house_number(self) -> Optional[int]:
        return int(self.number) if self.number else None


def address_key(street: str, city: str, state: str, zipcode: str) -> str:
    """
    Build the cache/dedup identity for an address.

    Args:
        street: Street line (house number and street name).
        city: City name.
        state: Two-letter state code.
        zipcode: ZIP code; anything past the first five characters is dropped.

    Returns:
        Case-folded, trimmed ``street|city|state|zip`` string.
    """
    parts = [street or "", city or "", state or "", (zipcode or "").strip()[:5]]
    return "|".join(part.strip() for part in parts).casefold()


def extract_zip(text: str) -> Optional[str]:
    """Return the first standalone 5-digit group in ``text``."""
    match = _ZIP_RE.search(text or "")
    return match.group(1) if match else None


def strip_street_suffix(name: str) -> str:
    return _SUFFIX_RE.sub("", name).strip()


def parse_search_address(text: str) -> ParsedAddress:
    """
    Split a free-text search address into house number, street name and zip.

    ``"123 Oak St, Apt 2, 28202"`` parses to ``("123", "oak", "28202")``.
    Input without a leading house number keeps everything before the first
    comma (minus any zip) as the street name.

    Args:
        text: Address as typed by the user.

    Returns:
        ParsedAddress with a lower-cased street name.
    """
    cleaned = (text or "").strip()
    zipcode = extract_zip(cleaned)

    match = _STREET_RE.match(cleaned)
    if match:
        street = match.group(2)
        street = re.sub(r",.*$", "", street)
        street = strip_street_suffix(street)
        return ParsedAddress(number=match.group(1), street_name=street.lower(), zip=zipcode)

    street = _ZIP_RE.sub("", cleaned, count=1)
    street = re.sub(r",.*$", "", street)
    return ParsedAddress(number="", street_name=street.lower().strip(), zip=zipcode)


def extract_street_name(address: str) -> str:
    """Street name of a stored residential address, without number or suffix."""
    if not address:
        return ""
    name = re.sub(r"^\d+\s+", "", address.strip())
    name = _UNIT_TAIL_RE.sub("", name)
    return strip_street_suffix(name).lower().strip()


def house_number(address: str) -> Optional[int]:
    """Leading house number of ``address``, or None when there is none."""
    match = _LEADING_NUMBER_RE.match(address or "")
    return int(match.group(1)) if match else None


def street_sort_key(address: str) -> tuple[str, int]:
    """Sort key grouping addresses by street, then ascending house number."""
    return extract_street_name(address), house_number(address) or 0
