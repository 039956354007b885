"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, portable column types and shared enums
    source: Sources (rovers) and their categories (cameras)
    record: Ingested photos keyed on the provider's natural key
    watermark: Per-source last fully-synced unit
    ingestion_run: Run history with per-source breakdown

Database Schema:
    JSON columns are JSONB on PostgreSQL and plain JSON on SQLite, so the
    same models back production (asyncpg) and tests (aiosqlite).

Usage:
    from models import Source, Category, Record, Watermark
    from models.base import Base, RunStatus

Relationships:
    - Source → Category (one-to-many, (source_id, code) unique)
    - Record → Source, Record → Category (both non-nullable)
    - Watermark → Source (one-to-one)
    - IngestionRun → SourceRunDetail (one-to-many)
"""

from models.base import Base, SourceStatus, RunStatus
from models.source import Source, Category
from models.record import Record
from models.watermark import Watermark
from models.ingestion_run import IngestionRun, SourceRunDetail

__all__ = [
    "Base",
    "SourceStatus",
    "RunStatus",
    "Source",
    "Category",
    "Record",
    "Watermark",
    "IngestionRun",
    "SourceRunDetail",
]
