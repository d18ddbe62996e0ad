"""Batch geocoding pipeline.

This module:
1. Extracts unique addresses that are not in the cache yet
2. Splits them into fixed-size batches
3. Geocodes the batches on a bounded pool of worker threads, retrying
   transient provider failures
4. Merges every batch into the cache from a single collector and
   checkpoints the cache to disk on a timer and at the end of the run
"""

import queue
import time
from contextlib import closing
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

from loguru import logger

from vote_nearby.address import address_key
from vote_nearby.cache import GeocodeCache
from vote_nearby.config import PipelineConfig
from vote_nearby.geocoding.base import (
    BatchJob,
    GeocodeService,
    GeocodeServiceType,
    GeocodingProviderError,
)
from vote_nearby.models import (
    AddressRecord,
    Coordinates,
    GeocodedAddress,
    PipelineStats,
    VoterRecord,
)


@dataclass
class BatchOutcome:
    """Result of geocoding one batch, ready to merge into the cache."""

    index: int
    results: dict[str, Optional[Coordinates]]
    matched: int
    attempts: int
    exhausted: bool = False

    @property
    def size(self) -> int:
        return len(self.results)


@dataclass
class ProgressSnapshot:
    """Running totals after a batch completes."""

    batches_done: int
    total_batches: int
    processed: int
    total: int
    matched: int
    elapsed: float

    @property
    def match_rate(self) -> float:
        return self.matched / self.processed * 100 if self.processed else 0.0

    @property
    def eta_seconds(self) -> Optional[float]:
        """Remaining time by linear extrapolation of the rate so far."""
        if not self.processed:
            return None
        return (self.total - self.processed) / self.processed * self.elapsed


class ProgressTracker:
    """Accumulates per-batch outcomes into ProgressSnapshots."""

    def __init__(
        self,
        total: int,
        total_batches: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = total
        self.total_batches = total_batches
        self.batches_done = 0
        self.processed = 0
        self.matched = 0
        self._clock = clock
        self._started = clock()

    def record(self, outcome: BatchOutcome) -> ProgressSnapshot:
        self.batches_done += 1
        self.processed += outcome.size
        self.matched += outcome.matched
        return ProgressSnapshot(
            batches_done=self.batches_done,
            total_batches=self.total_batches,
            processed=self.processed,
            total=self.total,
            matched=self.matched,
            elapsed=self._clock() - self._started,
        )


def record_key(record: AddressRecord) -> str:
    return address_key(record.street, record.city, record.state, record.zip)


def collect_pending(
    records: Iterable[AddressRecord],
    cache: GeocodeCache,
    retry_unresolved: bool = False,
) -> dict[str, AddressRecord]:
    """
    Find unique addresses that still need geocoding.

    Args:
        records: Address records from the ETL.
        cache: Existing geocode cache.
        retry_unresolved: If True, also include addresses cached as resolved-null.

    Returns:
        AddressKey to first-seen AddressRecord, in input order.
    """
    pending: dict[str, AddressRecord] = {}
    for record in records:
        key = record_key(record)
        if key in pending:
            continue
        if key in cache and not (retry_unresolved and not cache.is_resolved(key)):
            continue
        pending[key] = record
    return pending


def build_batches(pending: dict[str, AddressRecord], batch_size: int) -> list[BatchJob]:
    """Split pending addresses into ordered batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    items = list(pending.items())
    return [
        BatchJob(index=index, entries=items[start : start + batch_size])
        for index, start in enumerate(range(0, len(items), batch_size))
    ]


def geocode_with_retry(
    service: GeocodeService,
    job: BatchJob,
    max_retries: int,
    retry_delay_base: float,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    """
    Geocode one batch, retrying provider failures with increasing delay.

    The delay before retry ``n`` is ``retry_delay_base * n``. Once
    ``max_retries`` retries are used up every address in the batch is
    returned as resolved-null.

    Args:
        service: Geocoding service to submit to.
        job: Batch to geocode.
        max_retries: Retries allowed after the first attempt.
        retry_delay_base: Base delay in seconds.
        sleep: Sleep function (replaced in tests).

    Returns:
        BatchOutcome keyed by AddressKey.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            matches = service.geocode_batch(job)
            break
        except GeocodingProviderError as e:
            if attempt > max_retries:
                logger.error(
                    "Batch {} failed after {} attempts: {}", job.index + 1, attempt, str(e)
                )
                return BatchOutcome(
                    index=job.index,
                    results={key: None for key, _ in job.entries},
                    matched=0,
                    attempts=attempt,
                    exhausted=True,
                )
            delay = retry_delay_base * attempt
            logger.warning(
                "Batch {} attempt {} failed ({}), retrying in {:.1f}s",
                job.index + 1,
                attempt,
                str(e),
                delay,
            )
            sleep(delay)

    results: dict[str, Optional[Coordinates]] = {}
    for position, (key, _) in enumerate(job.entries):
        results[key] = matches.get(job.local_id(position))

    return BatchOutcome(
        index=job.index,
        results=results,
        matched=sum(1 for value in results.values() if value is not None),
        attempts=attempt,
    )


class GeocodePipeline:
    """
    Coordinates a resumable batch geocoding run.

    The pipeline owns the cache handle. Worker threads only talk to the
    geocoding service; the thread calling ``run`` is the single collector
    that merges results into the cache and writes checkpoints.
    """

    def __init__(
        self,
        service: GeocodeService,
        cache: GeocodeCache,
        config: PipelineConfig,
        on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.cache = cache
        self.config = config
        self.on_progress = on_progress
        self._sleep = sleep

    def run(
        self,
        records: Iterable[AddressRecord],
        retry_unresolved: bool = False,
    ) -> PipelineStats:
        """
        Geocode every address not yet in the cache.

        Args:
            records: Address records from the ETL.
            retry_unresolved: If True, re-attempt addresses cached as resolved-null.

        Returns:
            PipelineStats for the run.
        """
        started = time.monotonic()
        records = list(records)
        stats = PipelineStats(total_addresses=len({record_key(r) for r in records}))

        pending = collect_pending(records, self.cache, retry_unresolved=retry_unresolved)

        incomplete = {
            key: None
            for key, record in pending.items()
            if not (record.street.strip() and record.city.strip() and record.zip.strip())
        }
        if incomplete:
            logger.info("Recording {} addresses with incomplete fields as unresolved", len(incomplete))
            self.cache.merge(incomplete)
            for key in incomplete:
                del pending[key]

        stats.pending = len(pending)
        logger.info(
            "{} unique addresses, {} to geocode with {}",
            stats.total_addresses,
            stats.pending,
            self.service.service_name,
        )

        try:
            if not pending:
                logger.info("All addresses already cached, skipping geocoding")
                return stats

            batches = build_batches(pending, self.config.batch_size)
            tracker = ProgressTracker(total=len(pending), total_batches=len(batches))
            logger.info(
                "{} batches of up to {} addresses, {} in parallel",
                len(batches),
                self.config.batch_size,
                self._worker_count(len(batches)),
            )

            with closing(self._execute(batches)) as outcomes:
                for outcome in outcomes:
                    self.cache.merge(outcome.results)

                    stats.processed += outcome.size
                    stats.matched += outcome.matched
                    stats.network_calls += outcome.attempts
                    if outcome.exhausted:
                        stats.failed_batches += 1

                    snapshot = tracker.record(outcome)
                    eta = snapshot.eta_seconds
                    logger.info(
                        "Batch {} done ({}/{}) | {:.1f}% match | {:.0f}s elapsed | ~{}s remaining",
                        outcome.index + 1,
                        snapshot.processed,
                        snapshot.total,
                        snapshot.match_rate,
                        snapshot.elapsed,
                        round(eta) if eta is not None else "?",
                    )
                    self.cache.flush_if_due(self.config.checkpoint_interval)

                    if self.on_progress is not None:
                        self.on_progress(snapshot)

        finally:
            self.cache.flush()
            stats.unresolved = sum(
                1 for key in pending if not self.cache.is_resolved(key)
            ) + len(incomplete)
            stats.elapsed_seconds = time.monotonic() - started

        logger.info(
            "Geocoding complete in {:.1f}s: {} processed, {} matched, {} unresolved, {} failed batches",
            stats.elapsed_seconds,
            stats.processed,
            stats.matched,
            stats.unresolved,
            stats.failed_batches,
        )
        return stats

    def _process_batch(self, job: BatchJob) -> BatchOutcome:
        try:
            return geocode_with_retry(
                self.service,
                job,
                max_retries=self.config.max_retries,
                retry_delay_base=self.config.retry_delay_base,
                sleep=self._sleep,
            )
        except Exception as e:
            # Unexpected errors still resolve the batch so the run can finish
            logger.exception("Batch {} failed unexpectedly: {}", job.index + 1, str(e))
            return BatchOutcome(
                index=job.index,
                results={key: None for key, _ in job.entries},
                matched=0,
                attempts=1,
                exhausted=True,
            )

    def _worker_count(self, batch_count: int) -> int:
        # Per-address providers enforce their own request rate, so their
        # batches run one at a time
        if self.service.service_type is GeocodeServiceType.INDIVIDUAL:
            return 1
        return min(self.config.concurrency, batch_count)

    def _execute(self, batches: list[BatchJob]) -> Iterator[BatchOutcome]:
        """Run batches on the worker pool, yielding outcomes as they finish."""
        work: queue.Queue[int] = queue.Queue()
        for index in range(len(batches)):
            work.put(index)
        done: queue.Queue[BatchOutcome] = queue.Queue()

        def worker() -> None:
            while True:
                try:
                    index = work.get_nowait()
                except queue.Empty:
                    return
                done.put(self._process_batch(batches[index]))

        workers = self._worker_count(len(batches))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="geocode") as pool:
            futures = [pool.submit(worker) for _ in range(workers)]
            try:
                for _ in range(len(batches)):
                    yield done.get()
            finally:
                _drain(work)
                for future in futures:
                    future.result()


def _drain(work: "queue.Queue[int]") -> None:
    while True:
        try:
            work.get_nowait()
        except queue.Empty:
            return


def apply_coordinates(
    records: Iterable[AddressRecord],
    cache: GeocodeCache,
) -> list[GeocodedAddress]:
    """
    Look up each record's coordinates in the cache.

    Returns:
        One GeocodedAddress per record; lat/lng are None when unresolved.
    """
    rows = []
    for record in records:
        coordinates = cache.get(record_key(record))
        rows.append(
            GeocodedAddress(
                id=record.id,
                lat=coordinates.lat if coordinates else None,
                lng=coordinates.lng if coordinates else None,
            )
        )
    return rows


def voter_address(voter: VoterRecord) -> AddressRecord:
    return AddressRecord(
        id=voter.voter_id,
        street=voter.residential_address,
        city=voter.city,
        state=voter.state,
        zip=voter.zip,
    )


def enrich_voters(voters: Iterable[VoterRecord], cache: GeocodeCache) -> list[VoterRecord]:
    """Return copies of ``voters`` with lat/lng taken from the cache."""
    enriched = []
    with_coords = 0
    for voter in voters:
        coordinates = cache.get(record_key(voter_address(voter)))
        if coordinates is not None:
            with_coords += 1
        enriched.append(
            voter.model_copy(
                update={
                    "lat": coordinates.lat if coordinates else None,
                    "lng": coordinates.lng if coordinates else None,
                }
            )
        )
    logger.info("Applied coordinates to {}/{} voter records", with_coords, len(enriched))
    return enriched
