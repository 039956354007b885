"""
Unit tests for the idempotency guard, reference resolver and batch writer
"""

import pytest
from sqlalchemy import event, func, select

from core.exceptions import ConstraintViolationError
from ingestion.idempotency import IdempotencyGuard, existing_keys
from ingestion.loaders.batch_writer import BatchWriter
from ingestion.reference_resolver import ReferenceResolver
from models.record import Record
from models.source import Category, Source
from schemas.record import CandidateRecord


async def source_id(session, name="curiosity") -> int:
    return (await session.execute(select(Source.id).where(Source.name == name))).scalar_one()


async def category_id(session, source, code) -> int:
    result = await session.execute(
        select(Category.id).where(Category.source_id == source, Category.code == code)
    )
    return result.scalar_one()


def candidate(key, unit=4100, code="NAVCAM"):
    return CandidateRecord(natural_key=key, unit=unit, category_code=code, raw_payload={"id": key})


async def store(session, keys, unit=4100):
    src = await source_id(session)
    cat = await category_id(session, src, "NAVCAM")
    rows = [candidate(k, unit).to_row(src, cat) for k in keys]
    return await BatchWriter().write(session, rows)


async def record_count(session) -> int:
    return (await session.execute(select(func.count()).select_from(Record))).scalar_one()


class TestIdempotencyGuard:

    @pytest.mark.asyncio
    async def test_filters_stored_keys(self, db_session):
        await store(db_session, ["1", "2"])

        new = await IdempotencyGuard().filter(db_session, [candidate("1"), candidate("3"), candidate("2")])

        assert [c.natural_key for c in new] == ["3"]

    @pytest.mark.asyncio
    async def test_collapses_in_batch_duplicates(self, db_session):
        first = candidate("7", unit=1)
        second = candidate("7", unit=2)

        new = await IdempotencyGuard().filter(db_session, [first, second])

        assert new == [first]

    @pytest.mark.asyncio
    async def test_empty_input_issues_no_query(self, db_session, test_engine):
        statements = []

        def count(conn, cursor, statement, *args):
            statements.append(statement)

        event.listen(test_engine.sync_engine, "before_cursor_execute", count)
        try:
            assert await IdempotencyGuard().filter(db_session, []) == []
        finally:
            event.remove(test_engine.sync_engine, "before_cursor_execute", count)

        assert statements == []

    @pytest.mark.asyncio
    async def test_lookup_is_batched(self, db_session, test_engine):
        """One SELECT per 500 keys, not one per candidate"""
        statements = []

        def count(conn, cursor, statement, *args):
            if statement.lstrip().upper().startswith("SELECT"):
                statements.append(statement)

        candidates = [candidate(str(i)) for i in range(1200)]
        event.listen(test_engine.sync_engine, "before_cursor_execute", count)
        try:
            new = await IdempotencyGuard().filter(db_session, candidates)
        finally:
            event.remove(test_engine.sync_engine, "before_cursor_execute", count)

        assert len(new) == 1200
        assert len(statements) == 3

    @pytest.mark.asyncio
    async def test_existing_keys_treats_keys_as_opaque(self, db_session):
        await store(db_session, ["007"])

        assert await existing_keys(db_session, ["7", "007"]) == {"007"}


class TestReferenceResolver:

    @pytest.mark.asyncio
    async def test_resolves_seeded_codes_from_cache(self, session_factory, db_session):
        src = await source_id(db_session)
        resolver = ReferenceResolver(session_factory, src, "curiosity")

        assert await resolver.warm() == 7
        navcam = await resolver.resolve("navcam")

        assert navcam == await category_id(db_session, src, "NAVCAM")
        assert resolver.created_codes == []

    @pytest.mark.asyncio
    async def test_unknown_code_is_created_once(self, session_factory, db_session, caplog):
        src = await source_id(db_session)
        resolver = ReferenceResolver(session_factory, src, "curiosity")
        await resolver.warm()

        first = await resolver.resolve("SUPERCAM")
        second = await resolver.resolve("SUPERCAM")

        assert first == second
        assert resolver.created_codes == ["SUPERCAM"]
        assert "auto-created" in caplog.text

        async with session_factory() as session:
            category = await session.get(Category, first)
            assert category.code == "SUPERCAM"
            assert category.display_name == "SUPERCAM"

    @pytest.mark.asyncio
    async def test_concurrent_creation_reuses_existing_row(self, session_factory, db_session):
        src = await source_id(db_session)
        first = ReferenceResolver(session_factory, src, "curiosity")
        second = ReferenceResolver(session_factory, src, "curiosity")

        created_id = await first.resolve("NEWCAM")
        # second never warmed its cache, so it attempts the insert and loses
        reused_id = await second.resolve("NEWCAM")

        assert reused_id == created_id
        assert second.created_codes == []

        async with session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(Category).where(Category.code == "NEWCAM")
            )
            assert result.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_same_code_is_scoped_per_source(self, session_factory, db_session):
        curiosity = ReferenceResolver(session_factory, await source_id(db_session, "curiosity"))
        spirit = ReferenceResolver(session_factory, await source_id(db_session, "spirit"))

        assert await curiosity.resolve("NAVCAM") != await spirit.resolve("NAVCAM")


class TestBatchWriter:

    @pytest.mark.asyncio
    async def test_writes_all_rows(self, db_session):
        assert await store(db_session, ["1", "2", "3"]) == 3
        assert await record_count(db_session) == 3

    @pytest.mark.asyncio
    async def test_empty_batch(self, db_session):
        assert await BatchWriter().write(db_session, []) == 0

    @pytest.mark.asyncio
    async def test_race_fallback_drops_stored_rows(self, db_session):
        """Rows stored after the guard ran are dropped and the rest retried"""
        await store(db_session, ["2"])

        inserted = await store(db_session, ["1", "2", "3"])

        assert inserted == 2
        assert await record_count(db_session) == 3

    @pytest.mark.asyncio
    async def test_race_fallback_with_nothing_left(self, db_session):
        await store(db_session, ["1", "2"])

        assert await store(db_session, ["1", "2"]) == 0
        assert await record_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_unresolvable_violation_writes_nothing(self, db_session):
        with pytest.raises(ConstraintViolationError) as exc_info:
            await store(db_session, ["1", "9", "9"])

        assert exc_info.value.error_class == "ConstraintViolation"
        assert await record_count(db_session) == 0
