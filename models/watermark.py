from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from models.base import Base, utcnow


class Watermark(Base):
    """
    Per-source sync progress.

    - One row per source
    - last_synced_unit is the last unit the source is known to be fully
      synced through; it only moves forward and only after the source's
      run reached Completed
    """
    __tablename__ = "watermarks"

    source_id = Column(Integer, ForeignKey("sources.id"), primary_key=True)
    last_synced_unit = Column(Integer, nullable=False)

    last_run_at = Column(DateTime, nullable=True)
    last_status = Column(String(20), nullable=True)
    records_added_last_run = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
