from datetime import datetime
from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()


# ============================================================================
# PORTABLE TYPES
# ============================================================================

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and local runs)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention used by every DateTime column"""
    return datetime.utcnow()


# ============================================================================
# ENUMS
# ============================================================================

class SourceStatus(str, enum.Enum):
    """Operational status of a source (rover mission)"""
    ACTIVE = "active"
    COMPLETE = "complete"


class RunStatus(str, enum.Enum):
    """Ingestion run / per-source run status"""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
