"""
Database engine and session management with SQLAlchemy async
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def create_db_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite).

    Sessions are short-lived and opened per unit of work, so connection
    pooling is disabled in both cases.
    """
    url = database_url or settings.DATABASE_URL
    engine_kwargs: Dict[str, Any] = {
        "echo": echo,
        "poolclass": NullPool,
    }

    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

    logger.debug(f"Creating database engine for {url.split('@')[-1]}")
    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory shared by all source pipelines"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )
