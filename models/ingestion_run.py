from sqlalchemy import Column, BigInteger, Boolean, String, DateTime, Float, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
import uuid
from models.base import Base, BigIntPK, JSONType, RunStatus, utcnow


class IngestionRun(Base):
    """
    Audit trail of every ingestion run.

    Purpose:
    - Run history and performance monitoring
    - Detection of runs that died without finalizing (stuck "running")
    """
    __tablename__ = "ingestion_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)

    status = Column(String(20), default=RunStatus.RUNNING.value, nullable=False, index=True)

    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    sources_attempted = Column(Integer, default=0)
    sources_succeeded = Column(Integer, default=0)
    records_inserted = Column(Integer, default=0)

    error_summary = Column(Text, nullable=True)

    source_details = relationship("SourceRunDetail", back_populates="run")


class SourceRunDetail(Base):
    """Per-source breakdown of one ingestion run."""
    __tablename__ = "source_run_details"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(BigInteger().with_variant(Integer(), "sqlite"), ForeignKey("ingestion_runs.id"), nullable=False, index=True)
    source_name = Column(String(50), nullable=False)

    start_unit = Column(Integer, nullable=True)
    end_unit = Column(Integer, nullable=True)
    used_fallback_frontier = Column(Boolean, default=False, nullable=False)

    units_attempted = Column(Integer, default=0)
    units_succeeded = Column(Integer, default=0)
    units_failed = Column(Integer, default=0)
    records_inserted = Column(Integer, default=0)

    duration_seconds = Column(Float, nullable=True)
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)
    failed_units = Column(JSONType, nullable=True)  # list of UnitOutcome dicts

    run = relationship("IngestionRun", back_populates="source_details")

    __table_args__ = (
        Index("idx_source_run_detail_source", "source_name", "run_id"),
    )
