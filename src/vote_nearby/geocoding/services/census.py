"""Census Geocoder service implementation."""

import csv
from io import BytesIO, StringIO
from typing import Optional

import httpx
from loguru import logger

from vote_nearby.config import Settings
from vote_nearby.models import Coordinates

from ..base import (
    BatchJob,
    GeocodeQuality,
    GeocodeService,
    GeocodeServiceType,
    GeocodingProviderError,
)
from ..registry import GeocodeServiceRegistry

# id, input address, match indicator, match type, matched address, "lng,lat"
MIN_MATCH_FIELDS = 6


@GeocodeServiceRegistry.register
class CensusGeocoder(GeocodeService):
    """US Census Batch Geocoder API implementation."""

    def __init__(self, config: Settings):
        """Initialize Census geocoder with configuration.

        Args:
            config: Application settings containing census configuration
        """
        super().__init__(config)
        self.census_config = config.geocode_services.census

    @property
    def service_name(self) -> str:
        """Unique identifier for this service."""
        return "census"

    @property
    def service_type(self) -> GeocodeServiceType:
        """Census supports batch processing."""
        return GeocodeServiceType.BATCH

    @property
    def batch_url(self) -> str:
        return f"{self.census_config.base_url}/locations/addressbatch"

    @property
    def lookup_url(self) -> str:
        return f"{self.census_config.base_url}/locations/onelineaddress"

    def prepare_addresses(self, job: BatchJob) -> str:
        """Format a batch for the Census batch API.

        The Census API expects CSV with NO header:
        {unique_id},{street_address},{city},{state},{zip}

        Fields containing commas or quotes are quoted by the csv writer.

        Args:
            job: Batch of addresses to geocode

        Returns:
            CSV string (no header) ready for submission
        """
        output = StringIO()
        writer = csv.writer(output, lineterminator="\n")

        for position, (_, record) in enumerate(job.entries):
            writer.writerow(
                [
                    job.local_id(position),
                    record.street.strip(),
                    record.city.strip(),
                    record.state.strip(),
                    record.zip.strip()[:5],
                ]
            )

        csv_content = output.getvalue()
        output.close()

        logger.debug("Built batch CSV for batch {} with {} records", job.index, len(job))
        return csv_content

    def submit_request(self, prepared_data: str) -> str:
        """Submit batch geocoding request to Census API.

        Args:
            prepared_data: CSV string from prepare_addresses()

        Returns:
            Response CSV string from Census API

        Raises:
            GeocodingProviderError: On timeout, HTTP error status or connection failure
        """
        batch_size = prepared_data.count("\n") if prepared_data else 0
        logger.debug(
            "Submitting batch of {} records to Census API (timeout: {}s)",
            batch_size,
            self.census_config.timeout,
        )

        files = {
            "addressFile": (
                "batch.csv",
                BytesIO(prepared_data.encode("utf-8")),
                "text/csv",
            ),
        }
        data = {"benchmark": self.census_config.benchmark}

        try:
            with httpx.Client(timeout=self.census_config.timeout) as client:
                response = client.post(self.batch_url, files=files, data=data)
                response.raise_for_status()

        except httpx.TimeoutException as e:
            logger.warning("Census API request timed out after {}s", self.census_config.timeout)
            raise GeocodingProviderError(self.service_name, "Batch request timed out") from e

        except httpx.HTTPStatusError as e:
            logger.warning("Census API returned HTTP {}", e.response.status_code)
            raise GeocodingProviderError(
                self.service_name,
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e

        except httpx.HTTPError as e:
            logger.warning("Census API transport error: {}", str(e))
            raise GeocodingProviderError(self.service_name, f"Transport error: {e}") from e

        logger.debug("Received response from Census API ({} bytes)", len(response.text))
        return response.text

    def parse_response(self, response: str) -> dict[str, Coordinates]:
        """Parse Census batch response into coordinates keyed by local id.

        The Census API returns CSV with format:
        {id},{input_address},{match_indicator},{match_type},{matched_address},
        {lng,lat},{tigerline_id},{side}

        Coordinates are longitude first. Each line is parsed on its own so a
        malformed row is skipped without affecting the rest of the batch.

        Args:
            response: Raw CSV response from Census API

        Returns:
            Mapping of local id to Coordinates for matched rows
        """
        results: dict[str, Coordinates] = {}
        skipped = 0

        for line in response.splitlines():
            if not line.strip():
                continue

            try:
                row = next(csv.reader([line]))
            except csv.Error as e:
                logger.warning("Skipping unparseable response row {!r}: {}", line, str(e))
                skipped += 1
                continue

            parsed = parse_result_row(row)
            if parsed is None:
                skipped += 1
                continue

            local_id, quality, coordinates = parsed
            if quality.is_match and coordinates is not None:
                results[local_id] = coordinates

        logger.debug(
            "Parsed {} matched rows from Census response ({} rows skipped)",
            len(results),
            skipped,
        )
        return results

    def geocode_address(self, query: str) -> Optional[Coordinates]:
        """Geocode a single one-line address with the Census JSON endpoint.

        Args:
            query: One-line address

        Returns:
            Coordinates of the first address match, or None

        Raises:
            GeocodingProviderError: On timeout, HTTP error status, connection
                failure or a response without an addressMatches list
        """
        params = {
            "address": query,
            "benchmark": self.census_config.benchmark,
            "format": "json",
        }

        try:
            with httpx.Client(timeout=self.census_config.lookup_timeout) as client:
                response = client.get(self.lookup_url, params=params)
                response.raise_for_status()
            data = response.json()

        except httpx.TimeoutException as e:
            raise GeocodingProviderError(self.service_name, "Lookup timed out") from e
        except httpx.HTTPStatusError as e:
            raise GeocodingProviderError(
                self.service_name,
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise GeocodingProviderError(self.service_name, f"Transport error: {e}") from e
        except ValueError as e:
            raise GeocodingProviderError(self.service_name, "Response was not valid JSON") from e

        result = data.get("result") if isinstance(data, dict) else None
        matches = result.get("addressMatches") if isinstance(result, dict) else None
        if not isinstance(matches, list):
            logger.warning("Census lookup returned unexpected payload: {}", data)
            raise GeocodingProviderError(self.service_name, "Response had no addressMatches list")
        if not matches:
            return None

        coords = matches[0].get("coordinates") if isinstance(matches[0], dict) else None
        if not isinstance(coords, dict) or coords.get("x") is None or coords.get("y") is None:
            return None
        try:
            return Coordinates(lat=float(coords["y"]), lng=float(coords["x"]))
        except (TypeError, ValueError):
            logger.warning("Census match without usable coordinates: {}", coords)
            return None


def classify_match(indicator: str, match_type: str = "") -> GeocodeQuality:
    """Map Census match indicator columns to a GeocodeQuality."""
    if indicator == "Match":
        return GeocodeQuality.EXACT if match_type == "Exact" else GeocodeQuality.NON_EXACT
    if indicator == "Non_Exact":
        return GeocodeQuality.NON_EXACT
    if indicator == "Tie":
        return GeocodeQuality.TIE
    if indicator in ("No_Match", ""):
        return GeocodeQuality.NO_MATCH
    return GeocodeQuality.FAILED


def parse_coordinates(value: str) -> Optional[Coordinates]:
    """Parse a Census ``"lng,lat"`` string, optionally wrapped in parentheses."""
    parts = [p.strip() for p in value.strip().strip("()").split(",")]
    if len(parts) != 2:
        return None
    try:
        lng = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return Coordinates(lat=lat, lng=lng)


def parse_result_row(
    row: list[str],
) -> Optional[tuple[str, GeocodeQuality, Optional[Coordinates]]]:
    """
    Interpret one parsed Census response row.

    Args:
        row: CSV fields of a single response line.

    Returns:
        ``(local_id, quality, coordinates)``, or None for rows too short to
        carry an id and match indicator.
    """
    if len(row) < 3:
        logger.warning("Skipping malformed response row: {}", row)
        return None

    local_id = row[0].strip()
    indicator = row[2].strip()
    match_type = row[3].strip() if len(row) > 3 else ""
    quality = classify_match(indicator, match_type)

    if quality is GeocodeQuality.FAILED:
        logger.warning("Unknown match indicator '{}' for row {}", indicator, local_id)

    if not quality.is_match:
        return local_id, quality, None

    if len(row) < MIN_MATCH_FIELDS:
        logger.warning("Matched row {} is missing its coordinate field", local_id)
        return local_id, GeocodeQuality.FAILED, None

    coordinates = parse_coordinates(row[5])
    if coordinates is None:
        logger.warning("Failed to parse coordinates '{}' for row {}", row[5], local_id)
        return local_id, GeocodeQuality.FAILED, None

    return local_id, quality, coordinates
