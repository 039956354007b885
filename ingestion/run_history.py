"""
Persisted run history: one IngestionRun per run plus one SourceRunDetail per
source, and cleanup of runs that died without finalizing.
"""

from datetime import timedelta
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.base import RunStatus, utcnow
from models.ingestion_run import IngestionRun, SourceRunDetail
from ingestion.aggregator import RunReport
import logging

logger = logging.getLogger(__name__)


class RunHistoryRecorder:

    def __init__(self, session_factory: async_sessionmaker, stuck_threshold_hours: float = 1.0):
        self.session_factory = session_factory
        self.stuck_threshold_hours = stuck_threshold_hours

    async def cleanup_stuck_runs(self) -> int:
        """Mark runs still 'running' after the threshold as failed."""
        cutoff = utcnow() - timedelta(hours=self.stuck_threshold_hours)
        async with self.session_factory() as session:
            result = await session.execute(
                update(IngestionRun)
                .where(IngestionRun.status == RunStatus.RUNNING.value, IngestionRun.started_at < cutoff)
                .values(
                    status=RunStatus.FAILED.value,
                    completed_at=utcnow(),
                    error_summary="Run did not finalize (process crashed or was killed)",
                )
            )
            await session.commit()

        count = result.rowcount or 0
        if count:
            logger.warning(f"Marked {count} stuck ingestion run(s) as failed")
        return count

    async def start(self, sources_attempted: int) -> int:
        """Insert the run row; returns its primary key."""
        async with self.session_factory() as session:
            run = IngestionRun(status=RunStatus.RUNNING.value, sources_attempted=sources_attempted)
            session.add(run)
            await session.commit()
            return run.id

    async def finish(self, run_pk: int, report: RunReport) -> Optional[IngestionRun]:
        """Finalize the run row and write per-source details."""
        async with self.session_factory() as session:
            run = await session.get(IngestionRun, run_pk)
            if run is None:
                logger.error(f"Ingestion run {run_pk} disappeared before it could be finalized")
                return None

            succeeded = sum(1 for s in report.sources if s.status == "success")
            if report.success and succeeded == len(report.sources):
                status = RunStatus.SUCCESS
            elif report.success or succeeded or report.records_inserted:
                status = RunStatus.PARTIAL
            else:
                status = RunStatus.FAILED

            run.status = status.value
            run.completed_at = utcnow()
            run.duration_seconds = report.duration_seconds
            run.sources_succeeded = succeeded
            run.records_inserted = report.records_inserted

            errors = [f"{s.source}: {s.error}" for s in report.sources if s.error]
            if report.cancelled:
                errors.append("run cancelled")
            run.error_summary = "; ".join(errors)[:2000] if errors else None

            for source_report in report.sources:
                plan = source_report.plan
                session.add(SourceRunDetail(
                    run_id=run.id,
                    source_name=source_report.source,
                    start_unit=plan.start_unit if plan else None,
                    end_unit=plan.end_unit if plan else None,
                    used_fallback_frontier=source_report.used_fallback,
                    units_attempted=source_report.units_attempted,
                    units_succeeded=source_report.units_succeeded,
                    units_failed=source_report.units_failed,
                    records_inserted=source_report.records_inserted,
                    duration_seconds=source_report.duration_seconds,
                    status=source_report.status,
                    error_message=source_report.error,
                    failed_units=[o.to_dict() for o in source_report.failed_units] or None,
                ))

            await session.commit()
            logger.info(f"Recorded ingestion run {run.run_id} as {status.value}")
            return run

    async def latest(self) -> Optional[IngestionRun]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(IngestionRun).order_by(IngestionRun.started_at.desc(), IngestionRun.id.desc()).limit(1)
            )
            return result.scalar_one_or_none()
