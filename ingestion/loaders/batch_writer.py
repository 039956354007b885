"""
Batch writer: commit new records in one multi-row INSERT per call.
"""

from typing import Any, Dict, List
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from models.record import Record
from ingestion.idempotency import existing_keys
from core.exceptions import ConstraintViolationError
import logging

logger = logging.getLogger(__name__)


class BatchWriter:
    """
    All-or-nothing batch insert into the records table.

    Ensures:
    - One transaction per call; nothing is written if any row fails
    - A unique-key violation is treated as an idempotency race: rows whose
      natural key appeared since the guard ran are dropped and the insert
      is retried once
    - Chunking is the caller's concern
    """

    async def write(self, session: AsyncSession, rows: List[Dict[str, Any]]) -> int:
        """
        Insert ``rows`` and commit.

        Args:
            session: Session owned by the current unit of work
            rows: Column dicts for the records table

        Returns:
            Number of records inserted

        Raises:
            ConstraintViolationError: The batch still violates a constraint
                after the race fallback
        """
        if not rows:
            return 0

        try:
            await self._insert(session, rows)
            return len(rows)
        except IntegrityError as e:
            await session.rollback()
            logger.info(
                f"Constraint violation inserting {len(rows)} records; "
                f"treating as idempotency race and re-checking natural keys",
                extra={"batch_size": len(rows), "error_class": "ConstraintViolation"},
            )
            first_error = e

        stored = await existing_keys(session, [row["natural_key"] for row in rows])
        survivors = [row for row in rows if row["natural_key"] not in stored]
        logger.info(f"Race fallback: {len(stored)} records already stored, retrying {len(survivors)}")

        if not survivors:
            return 0

        try:
            await self._insert(session, survivors)
        except IntegrityError as e:
            await session.rollback()
            raise ConstraintViolationError(
                f"Batch of {len(survivors)} records violates a constraint after race fallback",
                context={
                    "table_name": Record.__tablename__,
                    "batch_size": len(survivors),
                    "first_error": str(first_error.orig)[:200],
                },
                original_exception=e,
            )

        return len(survivors)

    async def _insert(self, session: AsyncSession, rows: List[Dict[str, Any]]):
        await session.execute(insert(Record), rows)
        await session.commit()
