"""
Reference resolver: category code → category id, creating unseen codes.
"""

from typing import Dict
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.source import Category
import logging

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """
    Per-source category cache with auto-creation on miss.

    An unknown code means either a genuinely new instrument or upstream data
    drift. Either way the record must not be lost: a Category is created with
    the code as its provisional display name and a warning is logged.

    Auto-created rows are committed in their own short session so they are
    independent of the unit's write transaction.
    """

    def __init__(self, session_factory: async_sessionmaker, source_id: int, source_name: str = ""):
        self.session_factory = session_factory
        self.source_id = source_id
        self.source_name = source_name or str(source_id)
        self._cache: Dict[str, int] = {}
        self.created_codes = []

    async def warm(self) -> int:
        """Load every category of this source into the cache."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Category.code, Category.id).where(Category.source_id == self.source_id)
            )
            for code, category_id in result.all():
                self._cache[code.upper()] = category_id

        logger.debug(f"Warmed category cache for {self.source_name} with {len(self._cache)} codes")
        return len(self._cache)

    async def resolve(self, code: str) -> int:
        """Return the category id for ``code``, creating the category if needed."""
        key = code.strip().upper()
        category_id = self._cache.get(key)
        if category_id is not None:
            return category_id

        category_id = await self._create(key)
        self._cache[key] = category_id
        return category_id

    async def _create(self, code: str) -> int:
        async with self.session_factory() as session:
            category = Category(source_id=self.source_id, code=code, display_name=code)
            session.add(category)
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent run created it first
                await session.rollback()
                result = await session.execute(
                    select(Category.id).where(
                        Category.source_id == self.source_id,
                        Category.code == code,
                    )
                )
                existing_id = result.scalar_one()
                logger.info(f"Category {code} for {self.source_name} was created concurrently; reusing id {existing_id}")
                return existing_id

            self.created_codes.append(code)
            logger.warning(
                f"Unknown category '{code}' for {self.source_name}; auto-created with provisional display name",
                extra={"source": self.source_name, "category_code": code, "category_id": category.id},
            )
            return category.id
