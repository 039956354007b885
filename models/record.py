from sqlalchemy import Column, Integer, String, DateTime, Date, Float, Text, ForeignKey, Index
from models.base import Base, BigIntPK, JSONType, utcnow


class Record(Base):
    """
    One ingested photo.

    Design:
    - natural_key is the provider-issued image id (opaque string, never
      assumed numeric) and is unique across all sources
    - a handful of queryable attributes are promoted to columns
    - raw_payload keeps the verbatim provider item for forward compatibility
    - rows are created only by the batch writer
    """
    __tablename__ = "records"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    natural_key = Column(Text, nullable=False)

    # Ownership
    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)

    # Time
    unit = Column(Integer, nullable=False)  # sol
    captured_at = Column(DateTime, nullable=True)
    earth_date = Column(Date, nullable=True)
    date_taken_mars = Column(String(50), nullable=True)
    mars_time_hour = Column(Integer, nullable=True)
    date_received = Column(DateTime, nullable=True)

    # Image locators
    img_src_full = Column(Text, nullable=True)
    img_src_small = Column(Text, nullable=True)
    img_src_medium = Column(Text, nullable=True)
    img_src_large = Column(Text, nullable=True)

    # Dimensions
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    sample_type = Column(String(50), nullable=True)

    # Location
    site = Column(Integer, nullable=True)
    drive = Column(Integer, nullable=True)
    xyz = Column(Text, nullable=True)

    # Orientation telemetry
    mast_az = Column(Float, nullable=True)
    mast_el = Column(Float, nullable=True)
    camera_vector = Column(Text, nullable=True)
    camera_position = Column(Text, nullable=True)
    camera_model_type = Column(String(50), nullable=True)
    attitude = Column(Text, nullable=True)
    spacecraft_clock = Column(Float, nullable=True)
    filter_name = Column(String(50), nullable=True)

    # Descriptive
    title = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)
    credit = Column(String(200), nullable=True)

    raw_payload = Column(JSONType, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_record_natural_key", "natural_key", unique=True),
        Index("idx_record_source_unit", "source_id", "unit"),
        Index("idx_record_source_category_unit", "source_id", "category_id", "unit"),
    )
