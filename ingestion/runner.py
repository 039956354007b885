# ============================================================================
# File: ingestion/runner.py
# Description: Ingestion orchestrator with per-unit failure isolation
# ============================================================================
"""
Ingestion Runner - orchestrates one finite ingestion run across sources.

For each source (in parallel, one task per source):
1. Plan - scheduler computes the unit range from frontier, watermark, lookback
2. Units - sequentially: fetch pages → extract → idempotency guard →
   reference resolution → batch write
3. Retry rounds - units that failed transiently get more attempts
4. Watermark - advanced only when the source completed and was not cancelled

The run never loops on its own; an external scheduler (cron, orchestrator)
invokes it. Cancellation is honored between units: a unit that has started
always finishes, including its commit.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import httpx
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
import logging

from core.config import settings
from core.exceptions import HttpPermanentError, SchedulerFatalError
from ingestion.aggregator import RunReport, SourceReport, SourceState, UnitOutcome
from ingestion.circuit_breaker import CircuitBreaker
from ingestion.http_client import ResilientFetchClient
from ingestion.idempotency import IdempotencyGuard
from ingestion.loaders.batch_writer import BatchWriter
from ingestion.reference_resolver import ReferenceResolver
from ingestion.run_history import RunHistoryRecorder
from ingestion.scheduler import IncrementalScheduler, UnitPlan
from ingestion.sources import SourceProfile, get_profiles
from models.base import utcnow
from models.record import Record
from models.source import Source
from models.watermark import Watermark
from schemas.record import CandidateRecord

logger = logging.getLogger(__name__)

# Upper bound on pages per unit in case a provider keeps returning full pages
MAX_PAGES_PER_UNIT = 100


class IngestionRunner:
    """
    Ingestion orchestrator.

    Responsibilities:
    - Run every source pipeline with its own HTTP client, breaker and resolver
    - Isolate unit failures so one bad unit never stops a source
    - Retry transiently failed units after the main pass
    - Advance watermarks and emit per-unit and summary log records
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        lookback: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        retry_rounds: Optional[int] = None,
        retry_delay: Optional[float] = None,
        min_dimension: Optional[int] = None,
        write_batch_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[asyncio.Event] = None,
        record_history: bool = False,
    ):
        self.session_factory = session_factory
        self.lookback = settings.LOOKBACK_UNITS if lookback is None else lookback
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_SOURCES
        self.retry_rounds = settings.FAILED_UNIT_RETRY_ROUNDS if retry_rounds is None else retry_rounds
        self.retry_delay = settings.FAILED_UNIT_RETRY_DELAY if retry_delay is None else retry_delay
        self.min_dimension = settings.MIN_IMAGE_DIMENSION if min_dimension is None else min_dimension
        self.write_batch_size = write_batch_size or settings.WRITE_BATCH_SIZE
        self.transport = transport
        self.sleep = sleep
        self.clock = clock
        self.cancel_event = cancel_event or asyncio.Event()
        self.record_history = record_history

        self.scheduler = IncrementalScheduler(session_factory, lookback=self.lookback)
        self.guard = IdempotencyGuard()
        self.writer = BatchWriter()
        self.history = RunHistoryRecorder(session_factory, settings.STUCK_RUN_THRESHOLD_HOURS)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self):
        """Request cancellation; takes effect before the next unit starts."""
        if not self.cancel_event.is_set():
            logger.warning("Cancellation requested; finishing in-flight units")
        self.cancel_event.set()

    async def run(self, profiles: Iterable[SourceProfile]) -> RunReport:
        """
        Run every source and aggregate the outcome.

        Returns:
            RunReport with per-source reports, success flag and exit code
        """
        profiles = list(profiles)
        started = time.monotonic()
        run_pk = None

        if self.record_history:
            await self.history.cleanup_stuck_runs()
            run_pk = await self.history.start(len(profiles))

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(profile: SourceProfile) -> SourceReport:
            async with semaphore:
                return await self.run_source(profile)

        reports = await asyncio.gather(*(bounded(p) for p in profiles))

        report = RunReport(sources=list(reports), cancelled=self.cancelled)
        report.duration_seconds = time.monotonic() - started

        if run_pk is not None:
            await self.history.finish(run_pk, report)

        summary = report.summary()
        log = logger.info if report.success else logger.error
        log(
            f"Ingestion run finished: success={summary['success']} "
            f"sources={summary['sources_completed']}/{summary['sources_attempted']} "
            f"units={summary['units_succeeded']}/{summary['units_attempted']} "
            f"records_inserted={summary['records_inserted']} "
            f"duration={summary['duration_seconds']}s",
            extra={"event": "ingestion_summary", "summary": summary},
        )
        return report

    async def run_source(self, profile: SourceProfile) -> SourceReport:
        """Run one source pipeline end to end. Never raises."""
        report = SourceReport(source=profile.name)
        started = time.monotonic()
        report.transition(SourceState.RUNNING)
        logger.info(f"Starting ingestion for source: {profile.name}")

        try:
            source_id = await self._ensure_source(profile)

            async with httpx.AsyncClient(
                transport=self.transport,
                headers={"User-Agent": settings.USER_AGENT, "Accept": "application/json"},
                timeout=profile.timeout,
                follow_redirects=True,
            ) as client:
                breaker = CircuitBreaker(
                    profile.name,
                    threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
                    cooldown=settings.CIRCUIT_BREAKER_COOLDOWN,
                    clock=self.clock,
                )
                fetch_client = ResilientFetchClient(
                    profile.name,
                    client,
                    breaker,
                    timeout=profile.timeout,
                    max_retries=settings.MAX_RETRIES,
                    base_delay=settings.RETRY_BASE_DELAY,
                    max_retry_after=settings.MAX_RETRY_AFTER_SECONDS,
                    sleep=self.sleep,
                )

                # ----- PHASE 1: PLAN -----
                try:
                    plan = await self.scheduler.plan_units(profile, source_id, fetch_client)
                except SchedulerFatalError as e:
                    report.error = e.message
                    report.transition(SourceState.FAILED)
                    logger.error(
                        f"Source {profile.name} failed: {e.message}",
                        extra={"source": profile.name, "error_context": e.to_dict()},
                    )
                    return report
                report.plan = plan

                resolver = ReferenceResolver(self.session_factory, source_id, profile.name)
                await resolver.warm()

                # ----- PHASE 2: UNITS -----
                for unit in plan.units:
                    if self.cancelled:
                        report.cancelled = True
                        break
                    report.units_attempted += 1
                    await self._run_unit(profile, source_id, unit, fetch_client, resolver, report)

                # ----- PHASE 3: RETRY ROUNDS -----
                await self._retry_failed_units(profile, source_id, fetch_client, resolver, report)

            report.transition(SourceState.COMPLETED)

            # ----- PHASE 4: WATERMARK -----
            if report.cancelled:
                logger.warning(
                    f"Source {profile.name} cancelled after {report.units_attempted} of "
                    f"{len(plan.units)} units; watermark not advanced"
                )
            else:
                await self._advance_watermark(source_id, plan, report)

        except Exception as e:
            # Infrastructure failure outside any unit (database unreachable, ...)
            report.error = f"{type(e).__name__}: {e}"[:500]
            if report.state == SourceState.RUNNING:
                report.transition(SourceState.FAILED)
            logger.error(
                f"Source {profile.name} aborted: {report.error}",
                exc_info=True,
                extra={"source": profile.name},
            )
        finally:
            report.duration_seconds = time.monotonic() - started

        logger.info(
            f"Source {profile.name} {report.state.value}: "
            f"{report.units_succeeded}/{report.units_attempted} units, "
            f"{report.records_inserted} records inserted, {report.units_failed} units failed"
        )
        return report

    async def process_unit(
        self,
        profile: SourceProfile,
        source_id: int,
        unit: int,
        fetch_client: ResilientFetchClient,
        resolver: ReferenceResolver,
    ) -> int:
        """
        Fetch, extract, filter, resolve and write one unit.

        Returns:
            Number of records inserted

        Raises:
            IngestionError: Any unit-level failure (fetch, payload parse,
                constraint violation); the caller records it
        """
        candidates = await self._fetch_candidates(profile, unit, fetch_client)
        if not candidates:
            return 0

        async with self.session_factory() as session:
            new = await self.guard.filter(session, candidates)
            if not new:
                return 0

            rows = []
            for candidate in new:
                category_id = await resolver.resolve(candidate.category_code)
                rows.append(candidate.to_row(source_id, category_id))

            inserted = 0
            for i in range(0, len(rows), self.write_batch_size):
                inserted += await self.writer.write(session, rows[i:i + self.write_batch_size])
            return inserted

    async def _fetch_candidates(
        self,
        profile: SourceProfile,
        unit: int,
        fetch_client: ResilientFetchClient,
    ) -> List[CandidateRecord]:
        candidates: List[CandidateRecord] = []

        for page in range(MAX_PAGES_PER_UNIT):
            try:
                payload = await fetch_client.fetch(profile.base_url, profile.unit_params(unit, page))
            except HttpPermanentError as e:
                if e.status_code != 404:
                    raise
                if page > 0:
                    logger.warning(
                        f"Page {page} of {profile.name} unit {unit} returned 404; "
                        f"keeping {len(candidates)} records from earlier pages"
                    )
                    break
                if profile.empty_on_not_found:
                    logger.debug(f"No photos for {profile.name} unit {unit} (404)")
                    return []
                raise

            page_candidates = profile.extract(payload, unit, min_dimension=self.min_dimension)
            candidates.extend(page_candidates)

            if not profile.has_more(payload, page):
                break
        else:
            logger.warning(f"Stopped paging {profile.name} unit {unit} after {MAX_PAGES_PER_UNIT} pages")

        return candidates

    async def _run_unit(
        self,
        profile: SourceProfile,
        source_id: int,
        unit: int,
        fetch_client: ResilientFetchClient,
        resolver: ReferenceResolver,
        report: SourceReport,
    ):
        unit_started = time.monotonic()
        try:
            inserted = await self.process_unit(profile, source_id, unit, fetch_client, resolver)
        except Exception as e:
            outcome = UnitOutcome.from_exception(profile.name, unit, e)
            report.record_failure(outcome)
            logger.warning(
                f"Unit {unit} of {profile.name} failed: {outcome.error_class}: {outcome.message}",
                extra={
                    "event": "unit_outcome",
                    "source": profile.name,
                    "unit": unit,
                    "status": "failed",
                    "error_class": outcome.error_class,
                    "error_message": outcome.message,
                    "status_code": outcome.status_code,
                    "duration_ms": round((time.monotonic() - unit_started) * 1000, 1),
                },
            )
            return

        report.record_success(unit, inserted)
        logger.info(
            f"Unit {unit} of {profile.name} succeeded: {inserted} records inserted",
            extra={
                "event": "unit_outcome",
                "source": profile.name,
                "unit": unit,
                "status": "succeeded",
                "records_inserted": inserted,
                "duration_ms": round((time.monotonic() - unit_started) * 1000, 1),
            },
        )

    async def _retry_failed_units(
        self,
        profile: SourceProfile,
        source_id: int,
        fetch_client: ResilientFetchClient,
        resolver: ReferenceResolver,
        report: SourceReport,
    ):
        """Re-attempt transiently failed units with growing delays between rounds."""
        for round_number in range(1, self.retry_rounds + 1):
            retryable = [o.unit for o in report.failed_units if o.is_transient]
            if not retryable or self.cancelled:
                return

            delay = self.retry_delay * (2 ** (round_number - 1))
            logger.info(
                f"Retry round {round_number}/{self.retry_rounds} for {profile.name}: "
                f"{len(retryable)} units after {delay} seconds",
                extra={"source": profile.name, "retry_round": round_number, "units": retryable},
            )
            await self.sleep(delay)

            for unit in retryable:
                if self.cancelled:
                    return
                await self._run_unit(profile, source_id, unit, fetch_client, resolver, report)

    async def _ensure_source(self, profile: SourceProfile) -> int:
        """Source row id for ``profile``, creating the row if it was never seeded."""
        async with self.session_factory() as session:
            source_id = await session.scalar(select(Source.id).where(Source.name == profile.name))
            if source_id is not None:
                return source_id

            source = Source(name=profile.name, display_name=profile.display_name, status="active", is_active=True)
            session.add(source)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return await session.scalar(select(Source.id).where(Source.name == profile.name))

            logger.warning(f"Source {profile.name} was not seeded; created it")
            return source.id

    async def _advance_watermark(self, source_id: int, plan: UnitPlan, report: SourceReport):
        """
        Move the watermark forward; never backwards.

        A plan built from a guessed frontier only advances the watermark as
        far as the highest unit that actually holds records.
        """
        async with self.session_factory() as session:
            target = plan.end_unit
            if plan.used_fallback:
                target = await session.scalar(
                    select(func.max(Record.unit)).where(
                        Record.source_id == source_id,
                        Record.unit <= plan.end_unit,
                    )
                )

            watermark = await session.get(Watermark, source_id)
            if watermark is None:
                if target is None:
                    logger.info(f"No records found for {report.source}; watermark not created")
                    return
                watermark = Watermark(source_id=source_id, last_synced_unit=target)
                session.add(watermark)
            elif target is not None:
                watermark.last_synced_unit = max(watermark.last_synced_unit, target)

            watermark.last_run_at = utcnow()
            watermark.last_status = report.status
            watermark.records_added_last_run = report.records_inserted
            watermark.error_message = (
                f"{report.units_failed} units failed: "
                + ", ".join(f"{o.unit}={o.error_class}" for o in report.failed_units)
            )[:2000] if report.failures else None

            await session.commit()
            new_value = watermark.last_synced_unit

        logger.info(
            f"Watermark for {report.source} advanced to {new_value}",
            extra={"source": report.source, "watermark": new_value},
        )


async def run_ingestion(
    profiles: Optional[Iterable[SourceProfile]] = None,
    session_factory: Optional[async_sessionmaker] = None,
    **runner_kwargs,
) -> RunReport:
    """
    Run one ingestion pass for ``profiles`` (default: ACTIVE_SOURCES).

    Creates and disposes its own engine when no session factory is given.
    """
    from core.database import create_db_engine, create_session_factory

    selected = list(profiles) if profiles is not None else get_profiles()

    if session_factory is not None:
        return await IngestionRunner(session_factory, **runner_kwargs).run(selected)

    engine = create_db_engine()
    try:
        runner = IngestionRunner(create_session_factory(engine), **runner_kwargs)
        return await runner.run(selected)
    finally:
        await engine.dispose()
