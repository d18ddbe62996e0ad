"""Readers and writers for voter and address files (CSV or JSON)."""

from pathlib import Path
from typing import Iterable

import pandas as pd
from loguru import logger

from vote_nearby.models import AddressRecord, VoterRecord

# Header aliases seen in state exports, mapped to VoterRecord fields.
# Headers already in snake_case pass through unchanged.
COLUMN_MAP = {
    "Voter ID": "voter_id",
    "Voter Registration Number": "voter_id",
    "First Name": "first_name",
    "Last Name": "last_name",
    "Date of Birth": "date_of_birth",
    "Gender": "gender",
    "Residential Address": "residential_address",
    "Residence Address": "residential_address",
    "City": "city",
    "Residence City": "city",
    "State": "state",
    "Zip": "zip",
    "Zip Code": "zip",
    "Residence Zipcode": "zip",
    "Party": "party_affiliation",
    "Party Affiliation": "party_affiliation",
    "Registration Date": "registration_date",
    "Status": "voter_status",
    "Voter Status": "voter_status",
    "Latitude": "lat",
    "Longitude": "lng",
}

# Required columns (after renaming) for each file kind
VOTER_REQUIRED_COLUMNS = ["voter_id", "residential_address", "city", "state", "zip"]
ADDRESS_REQUIRED_COLUMNS = ["id", "street", "city", "state", "zip"]

JSON_SUFFIXES = {".json"}


def read_table(file_path: str | Path, required: list[str]) -> pd.DataFrame:
    """
    Read a CSV or JSON records file.

    CSV columns are read as strings to preserve leading zeros in zip codes.
    JSON files must hold an array of objects.

    Args:
        file_path: Path to the file
        required: Column names that must be present after header renaming

    Returns:
        pandas DataFrame with snake_case column names

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If required columns are missing
    """
    path = Path(file_path)
    if not path.exists():
        logger.error("Input file not found: {}", file_path)
        raise FileNotFoundError(f"Input file not found: {file_path}")

    logger.info("Reading input file: {}", file_path)

    if path.suffix.lower() in JSON_SUFFIXES:
        df = pd.read_json(path, orient="records", dtype=False, convert_dates=False)
    else:
        df = pd.read_csv(path, dtype=str)

    df = df.rename(columns=COLUMN_MAP)
    logger.debug("File loaded with {} rows and {} columns", len(df), len(df.columns))

    missing_columns = [col for col in required if col not in df.columns]
    if missing_columns:
        logger.error("Missing required columns: {}", missing_columns)
        raise ValueError(
            f"Missing required columns: {', '.join(missing_columns)}. "
            f"Required: {', '.join(required)}"
        )

    return df


def dataframe_to_dicts(df: pd.DataFrame) -> list[dict]:
    """
    Convert a DataFrame to a list of dictionaries.

    Note:
        Replaces pandas NaN values with None. Non-scalar cells (lists from
        JSON vote history) are kept as they are.
    """
    records = df.to_dict("records")

    for record in records:
        for key, value in record.items():
            if pd.api.types.is_scalar(value) and pd.isna(value):
                record[key] = None

    logger.debug("Converted {} records to dictionaries", len(records))

    return records


def read_voter_file(file_path: str | Path) -> list[VoterRecord]:
    """Load voter records from a CSV or JSON voter file."""
    df = read_table(file_path, VOTER_REQUIRED_COLUMNS)
    # Blank cells fall back to the model defaults
    voters = [
        VoterRecord(**{key: value for key, value in row.items() if value is not None})
        for row in dataframe_to_dicts(df)
    ]
    logger.info("Loaded {} voter records", len(voters))
    return voters


def read_address_file(file_path: str | Path) -> list[AddressRecord]:
    """Load canonical ETL address records ``{id, street, city, state, zip}``."""
    df = read_table(file_path, ADDRESS_REQUIRED_COLUMNS)
    records = [
        AddressRecord(
            id=str(row["id"]),
            street=_text(row["street"]),
            city=_text(row["city"]),
            state=_text(row["state"]),
            zip=_text(row["zip"]),
        )
        for row in dataframe_to_dicts(df)
    ]
    logger.info("Loaded {} address records", len(records))
    return records


def _text(value) -> str:
    return "" if value is None else str(value)


def write_records(file_path: str | Path, rows: Iterable[dict]) -> int:
    """
    Write rows to a CSV or JSON file, chosen by the file suffix.

    Returns:
        Number of rows written
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame(list(rows))
    if path.suffix.lower() in JSON_SUFFIXES:
        df.to_json(path, orient="records")
    else:
        df.to_csv(path, index=False)

    logger.info("Wrote {} rows to {}", len(df), path)
    return len(df)
