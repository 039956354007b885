"""
Idempotency guard: keep only candidates whose natural key is not stored yet.
"""

from typing import List, Sequence, Set
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from models.record import Record
from schemas.record import CandidateRecord
import logging

logger = logging.getLogger(__name__)

# Keeps the IN (...) list well under driver bind-parameter limits
LOOKUP_CHUNK_SIZE = 500


async def existing_keys(session: AsyncSession, keys: Sequence[str]) -> Set[str]:
    """Natural keys from ``keys`` that already exist in the records table."""
    found: Set[str] = set()
    for i in range(0, len(keys), LOOKUP_CHUNK_SIZE):
        chunk = keys[i:i + LOOKUP_CHUNK_SIZE]
        result = await session.execute(
            select(Record.natural_key).where(Record.natural_key.in_(chunk))
        )
        found.update(result.scalars().all())
    return found


class IdempotencyGuard:
    """
    Batched pre-insert existence check keyed on natural key.

    The unique index on records.natural_key stays the final authority; two
    concurrent runs can both pass the filter, and the batch writer absorbs
    that race.
    """

    async def filter(self, session: AsyncSession, candidates: List[CandidateRecord]) -> List[CandidateRecord]:
        """
        Return the new-only subset of ``candidates``.

        Duplicate natural keys inside the batch collapse to the first
        occurrence.
        """
        if not candidates:
            return []

        unique: List[CandidateRecord] = []
        seen: Set[str] = set()
        for candidate in candidates:
            if candidate.natural_key in seen:
                continue
            seen.add(candidate.natural_key)
            unique.append(candidate)

        stored = await existing_keys(session, [c.natural_key for c in unique])
        new = [c for c in unique if c.natural_key not in stored]

        logger.debug(
            f"Idempotency guard: {len(candidates)} candidates, "
            f"{len(candidates) - len(unique)} in-batch duplicates, "
            f"{len(stored)} already stored, {len(new)} new"
        )
        return new
