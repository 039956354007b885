"""
Incremental scheduler: compute the unit range to (re)fetch for a source.

The range always re-covers a trailing lookback window before the stored
watermark so that units the provider backfilled late are picked up. A unit
containing only known records is cheap; the idempotency guard discards
everything.
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.exceptions import FetchError, ParseError, SchedulerFatalError
from ingestion.http_client import ResilientFetchClient
from ingestion.sources import SourceProfile
from models.record import Record
from models.watermark import Watermark
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitPlan:
    """Inclusive unit range for one source run."""
    start_unit: int
    end_unit: int
    frontier: int
    used_fallback: bool = False
    watermark: Optional[int] = None

    @property
    def units(self) -> range:
        return range(self.start_unit, self.end_unit + 1)


class IncrementalScheduler:
    """
    Plans units from the provider frontier, the stored watermark and a
    lookback margin.

    Attributes:
        lookback: Units re-fetched before the watermark (default: 7)
    """

    def __init__(self, session_factory: async_sessionmaker, lookback: int = 7):
        self.session_factory = session_factory
        self.lookback = lookback

    async def plan_units(
        self,
        profile: SourceProfile,
        source_id: int,
        fetch_client: ResilientFetchClient,
    ) -> UnitPlan:
        """
        Compute (start_unit, end_unit) for ``profile``.

        Raises:
            SchedulerFatalError: No watermark, no stored records and the
                frontier query failed; no starting point can be computed
        """
        watermark, stored_max = await self._stored_progress(source_id)

        used_fallback = False
        try:
            frontier = await self.query_frontier(profile, fetch_client)
        except (FetchError, ParseError) as e:
            # Stored records take precedence; the watermark only applies when there are none
            base = stored_max if stored_max is not None else watermark
            if base is None:
                raise SchedulerFatalError(
                    f"Cannot compute a starting unit for {profile.name}: "
                    f"no watermark, no stored records and the frontier query failed",
                    context={"source_name": profile.name, "frontier_error": e.error_class},
                    original_exception=e,
                )

            frontier = base + self.lookback
            used_fallback = True
            logger.warning(
                f"Frontier query failed for {profile.name} ({e.error_class}); "
                f"falling back to stored max unit {base} + lookback {self.lookback} = {frontier}",
                extra={
                    "source": profile.name,
                    "fallback_frontier": frontier,
                    "error_class": e.error_class,
                },
            )

        anchor = watermark if watermark is not None else frontier
        if used_fallback:
            anchor = min(anchor, frontier - self.lookback)
        start = max(profile.min_unit, anchor - self.lookback)
        start = min(start, frontier)

        plan = UnitPlan(
            start_unit=start,
            end_unit=frontier,
            frontier=frontier,
            used_fallback=used_fallback,
            watermark=watermark,
        )
        logger.info(
            f"Planned units {plan.start_unit}..{plan.end_unit} for {profile.name} "
            f"(watermark={watermark}, frontier={frontier}, fallback={used_fallback})",
            extra={
                "source": profile.name,
                "start_unit": plan.start_unit,
                "end_unit": plan.end_unit,
                "used_fallback": used_fallback,
            },
        )
        return plan

    async def query_frontier(self, profile: SourceProfile, fetch_client: ResilientFetchClient) -> int:
        """Ask the provider for its latest unit."""
        payload = await fetch_client.fetch(profile.base_url, profile.frontier_params())
        return profile.parse_frontier(payload)

    async def _stored_progress(self, source_id: int):
        async with self.session_factory() as session:
            watermark = await session.scalar(
                select(Watermark.last_synced_unit).where(Watermark.source_id == source_id)
            )
            stored_max = await session.scalar(
                select(func.max(Record.unit)).where(Record.source_id == source_id)
            )
        return watermark, stored_max
