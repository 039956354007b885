"""
Core utilities and configuration for the Mars photo ingestion system.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Engine and session factory creation (asyncpg / aiosqlite)
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration (text or JSON lines)

Usage:
    from core.config import settings
    from core.database import create_db_engine, create_session_factory
    from core.exceptions import FetchError, SchedulerFatalError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "create_db_engine",
    "create_session_factory",
    "setup_logging",
    # Exceptions
    "IngestionError",
    "RetryableError",
    "FetchError",
    "NetworkError",
    "FetchTimeoutError",
    "HttpTransientError",
    "HttpPermanentError",
    "CircuitOpenError",
    "ParseError",
    "PayloadParseError",
    "RecordParseError",
    "ConstraintViolationError",
    "SchedulerFatalError",
]
