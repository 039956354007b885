"""
Fixtures for end-to-end ingestion runs against the stubbed providers
"""

import pytest
from sqlalchemy import func, select

from ingestion.runner import IngestionRunner
from models.record import Record
from models.source import Category, Source
from models.watermark import Watermark


class StoreInspector:
    """Read-only queries used by assertions"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def record_count(self, source_name=None) -> int:
        async with self.session_factory() as session:
            query = select(func.count()).select_from(Record)
            if source_name is not None:
                query = query.join(Source, Source.id == Record.source_id).where(Source.name == source_name)
            return (await session.execute(query)).scalar_one()

    async def record(self, natural_key):
        async with self.session_factory() as session:
            result = await session.execute(select(Record).where(Record.natural_key == natural_key))
            return result.scalar_one_or_none()

    async def watermark(self, source_name):
        async with self.session_factory() as session:
            result = await session.execute(
                select(Watermark).join(Source, Source.id == Watermark.source_id).where(Source.name == source_name)
            )
            return result.scalar_one_or_none()

    async def categories(self, code):
        async with self.session_factory() as session:
            result = await session.execute(select(Category).where(Category.code == code))
            return result.scalars().all()


@pytest.fixture
def store(session_factory):
    return StoreInspector(session_factory)


@pytest.fixture
def make_runner(session_factory, provider, fake_sleep, fake_clock):
    """Runner wired to the provider stub, fake sleep and fake clock"""

    def build(**kwargs):
        kwargs.setdefault("lookback", 0)
        kwargs.setdefault("max_concurrency", 1)
        return IngestionRunner(
            session_factory,
            transport=provider.transport,
            sleep=fake_sleep,
            clock=fake_clock,
            **kwargs,
        )

    return build
