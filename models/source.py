from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class Source(Base):
    """
    A data source (rover) whose imaging API is ingested.

    Static reference data: seeded once, rarely mutated.
    """
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)  # lowercase key, e.g. "perseverance"
    display_name = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    categories = relationship("Category", back_populates="source")


class Category(Base):
    """
    A camera/instrument owned by one source.

    Normally seeded; auto-created by the reference resolver when provider
    data carries an unseen code, in which case display_name is the code.
    """
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    display_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    source = relationship("Source", back_populates="categories")

    __table_args__ = (
        Index("idx_category_source_code", "source_id", "code", unique=True),
    )
