"""Command-line interface for Vote Nearby using Typer."""

from pathlib import Path
from typing import NoReturn

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from vote_nearby.cache import GeocodeCache
from vote_nearby.config import Settings, get_settings
from vote_nearby.csv_reader import read_address_file, read_voter_file, write_records
from vote_nearby.geocoding import GeocodeServiceRegistry, GeocodeServiceType
from vote_nearby.logging import setup_logging
from vote_nearby.models import AddressRecord, PipelineStats
from vote_nearby.pipeline import (
    GeocodePipeline,
    ProgressSnapshot,
    apply_coordinates,
    enrich_voters,
    voter_address,
)
from vote_nearby.resolver import AddressResolver, LookupCache
from vote_nearby.search import InvalidSearchError, NearbyRequest, NearbySearch

app = typer.Typer(
    name="vote-nearby",
    help="Vote Nearby: Batch geocode voter files and find voters near an address",
    add_completion=True,
)

# Global state for verbose flag
_verbose = False


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging (DEBUG level)",
    ),
) -> None:
    """
    Vote Nearby CLI - Geocode voter records and run proximity searches.
    """
    global _verbose
    _verbose = verbose

    settings = get_settings()
    if verbose:
        settings.log_level = "DEBUG"
    setup_logging(settings)

    logger.debug("Verbose mode enabled")


def _load_addresses(input_file: Path, addresses: bool) -> list[AddressRecord]:
    if addresses:
        return read_address_file(input_file)
    return [voter_address(voter) for voter in read_voter_file(input_file)]


def _fail(message: str) -> NoReturn:
    typer.secho(f"✗ {message}", fg=typer.colors.RED, bold=True)
    raise typer.Exit(code=1)


def _print_stats(stats: PipelineStats) -> None:
    console = Console()

    table = Table(title="Geocoding Results", show_header=True, header_style="bold magenta")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_column("Percentage", justify="right", style="yellow")

    processed = stats.processed
    if processed > 0:
        table.add_row("Matched", f"{stats.matched:,}", f"{stats.match_rate:.1f}%")
        table.add_row(
            "No Match",
            f"{processed - stats.matched:,}",
            f"{(processed - stats.matched) / processed * 100:.1f}%",
        )
        table.add_row("Failed Batches", f"{stats.failed_batches:,}", "")
        table.add_row("Total", f"{processed:,}", "100.0%", style="bold")
    else:
        table.add_row("No addresses processed", "0", "0.0%")

    console.print(table)


def _apply_overrides(
    settings: Settings,
    batch_size: int | None,
    concurrency: int | None,
    max_retries: int | None,
) -> None:
    if batch_size is not None:
        settings.pipeline.batch_size = batch_size
    if concurrency is not None:
        settings.pipeline.concurrency = concurrency
    if max_retries is not None:
        settings.pipeline.max_retries = max_retries


@app.command()
def geocode(
    input_file: Path = typer.Argument(..., help="Voter file (or address file with --addresses)"),
    addresses: bool = typer.Option(
        False,
        "--addresses",
        help="Input is an ETL address file with id, street, city, state, zip",
    ),
    cache_file: Path | None = typer.Option(
        None,
        "--cache",
        "-c",
        help="Geocode cache file (default from settings)",
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        "-b",
        help="Addresses per API call (max 10000)",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "--parallel",
        "-p",
        help="Batches geocoded in parallel",
    ),
    max_retries: int | None = typer.Option(
        None,
        "--max-retries",
        help="Retries per batch before its addresses are recorded as unresolved",
    ),
    retry_unresolved: bool = typer.Option(
        False,
        "--retry-unresolved",
        help="Re-attempt addresses previously recorded as unresolved",
    ),
    output_file: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write records with coordinates applied to this file",
    ),
) -> None:
    """Geocode addresses with the batch geocoding service, resuming from the cache."""
    logger.info(
        "geocode command called with file={}, batch_size={}, concurrency={}, retry_unresolved={}",
        input_file,
        batch_size,
        concurrency,
        retry_unresolved,
    )

    settings = get_settings()

    if batch_size is not None and not 1 <= batch_size <= 10000:
        _fail("batch_size must be between 1 and 10000 (Census API limit)")
    if concurrency is not None and concurrency < 1:
        _fail("concurrency must be at least 1")
    if max_retries is not None and max_retries < 0:
        _fail("max_retries cannot be negative")

    _apply_overrides(settings, batch_size, concurrency, max_retries)

    try:
        records = _load_addresses(input_file, addresses)
        cache = GeocodeCache.load(cache_file or settings.cache_file)
        service = GeocodeServiceRegistry.get_service(settings.batch_geocode_service, settings)

        typer.echo(f"Starting geocoding with {service.service_name}...")
        if GeocodeServiceRegistry.service_type(settings.batch_geocode_service) is GeocodeServiceType.INDIVIDUAL:
            batch_services = ", ".join(GeocodeServiceRegistry.list_services(GeocodeServiceType.BATCH))
            typer.echo(
                f"{service.service_name} geocodes one address per request, so batches run "
                f"one at a time. Batch services: {batch_services}"
            )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            transient=False,
        ) as progress:
            task = progress.add_task("Geocoding addresses...", total=None)

            def on_progress(snapshot: ProgressSnapshot) -> None:
                progress.update(
                    task,
                    total=snapshot.total,
                    completed=snapshot.processed,
                    description=f"Geocoding addresses ({snapshot.match_rate:.1f}% matched)...",
                )

            pipeline = GeocodePipeline(service, cache, settings.pipeline, on_progress=on_progress)
            stats = pipeline.run(records, retry_unresolved=retry_unresolved)

        _print_stats(stats)

        if stats.pending == 0:
            typer.secho("No pending addresses to geocode", fg=typer.colors.YELLOW)
        else:
            typer.secho(
                f"\n✓ Geocoded {stats.processed:,} addresses in {stats.elapsed_seconds:.1f}s",
                fg=typer.colors.GREEN,
                bold=True,
            )
            if stats.unresolved > 0:
                typer.secho(
                    f"  {stats.unresolved:,} addresses could not be geocoded",
                    fg=typer.colors.YELLOW,
                )
            if stats.failed_batches > 0:
                typer.secho(
                    f"  {stats.failed_batches:,} batches failed after retries",
                    fg=typer.colors.RED,
                )

        if output_file is not None:
            _write_applied(input_file, output_file, addresses, cache)

    except FileNotFoundError as e:
        logger.error("File not found: {}", str(e))
        _fail(f"File not found: {input_file}")

    except ValueError as e:
        logger.error("Validation error: {}", str(e))
        _fail(f"Input validation failed: {str(e)}")

    except Exception as e:
        logger.error("Geocoding failed: {}", str(e))
        _fail(f"Geocoding failed: {str(e)}")


def _write_applied(input_file: Path, output_file: Path, addresses: bool, cache: GeocodeCache) -> int:
    if addresses:
        rows = [row.model_dump() for row in apply_coordinates(read_address_file(input_file), cache)]
    else:
        rows = [voter.model_dump() for voter in enrich_voters(read_voter_file(input_file), cache)]

    written = write_records(output_file, rows)
    typer.secho(f"✓ Wrote {written:,} records to {output_file}", fg=typer.colors.GREEN)
    return written


@app.command()
def apply(
    input_file: Path = typer.Argument(..., help="Voter file (or address file with --addresses)"),
    output_file: Path = typer.Argument(..., help="Output file (.json or .csv)"),
    addresses: bool = typer.Option(
        False,
        "--addresses",
        help="Input is an ETL address file; output rows are id, lat, lng",
    ),
    cache_file: Path | None = typer.Option(
        None,
        "--cache",
        "-c",
        help="Geocode cache file (default from settings)",
    ),
) -> None:
    """Attach cached coordinates to records without calling the geocoder."""
    logger.info("apply command called with file={}, output={}", input_file, output_file)

    settings = get_settings()

    try:
        cache = GeocodeCache.load(cache_file or settings.cache_file)
        _write_applied(input_file, output_file, addresses, cache)

    except FileNotFoundError as e:
        logger.error("File not found: {}", str(e))
        _fail(f"File not found: {input_file}")

    except ValueError as e:
        logger.error("Validation error: {}", str(e))
        _fail(f"Input validation failed: {str(e)}")


@app.command()
def nearby(
    voter_file: Path = typer.Argument(..., help="Voter file with coordinates applied"),
    state: str = typer.Option(..., "--state", "-s", help="Two-letter state code"),
    address: str | None = typer.Option(None, "--address", "-a", help="Street address to search from"),
    zipcode: str | None = typer.Option(None, "--zip", "-z", help="Five-digit zip code"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Page size (max 200)"),
    offset: int | None = typer.Option(None, "--offset", help="Results to skip"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON response"),
) -> None:
    """Find active voters nearest to an address or zip code."""
    logger.info("nearby command called with state={}, zip={}", state, zipcode)

    settings = get_settings()

    try:
        request = NearbyRequest(
            address=address, zip=zipcode, state=state, limit=limit, offset=offset
        )
        voters = read_voter_file(voter_file)

        service = GeocodeServiceRegistry.get_service(settings.lookup_geocode_service, settings)
        resolver = AddressResolver(service, LookupCache(settings.search.resolver_cache_size))
        response = NearbySearch(resolver, settings.search).search(request, voters)

    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        logger.error("Invalid search: {}", messages)
        _fail(f"Invalid search: {messages}")

    except InvalidSearchError as e:
        logger.error("Invalid search: {}", str(e))
        _fail(str(e))

    except FileNotFoundError as e:
        logger.error("File not found: {}", str(e))
        _fail(f"File not found: {voter_file}")

    except ValueError as e:
        logger.error("Validation error: {}", str(e))
        _fail(f"Input validation failed: {str(e)}")

    if as_json:
        typer.echo(response.model_dump_json(indent=2))
        return

    console = Console()

    if response.center_lat is not None:
        title = f"Voters near {response.center_lat:.5f}, {response.center_lng:.5f}"
    else:
        title = "Voters by street (search location not geocoded)"

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Zip", justify="right")
    table.add_column("Party", style="yellow")
    table.add_column("Born", justify="right")

    for voter in response.voters:
        table.add_row(
            f"{voter['first_name']} {voter['last_name']}".strip(),
            voter["residential_address"],
            voter["zip"],
            voter["party_affiliation"],
            voter["birth_year"] or "",
        )

    console.print(table)

    start = (offset or 0) + 1 if response.voters else 0
    end = (offset or 0) + len(response.voters)
    typer.secho(
        f"Showing {start}-{end} of {response.total:,}" + (" (more available)" if response.has_more else ""),
        fg=typer.colors.GREEN,
    )


@app.command()
def cache_status(
    cache_file: Path | None = typer.Option(
        None,
        "--cache",
        "-c",
        help="Geocode cache file (default from settings)",
    ),
) -> None:
    """Display how many cached addresses are resolved or unresolved."""
    logger.info("cache-status command called")

    settings = get_settings()
    path = cache_file or Path(settings.cache_file)

    if not path.exists():
        typer.secho(f"No geocode cache at {path}", fg=typer.colors.YELLOW)
        return

    stats = GeocodeCache.load(path).stats()

    console = Console()
    table = Table(title="Geocode Cache", show_header=True, header_style="bold magenta")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_column("Percentage", justify="right", style="yellow")

    total = stats["total"]
    for label, key in (("Resolved", "resolved"), ("Unresolved", "unresolved")):
        percentage = stats[key] / total * 100 if total else 0.0
        table.add_row(label, f"{stats[key]:,}", f"{percentage:.1f}%")
    table.add_row("Total", f"{total:,}", "100.0%", style="bold")

    console.print(table)
