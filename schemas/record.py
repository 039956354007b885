"""
Pydantic schema for candidate records produced by the source extractors
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import date, datetime


class CandidateRecord(BaseModel):
    """
    Canonical shape every extractor emits.

    Only natural_key, unit and category_code are required; every other
    attribute is simply absent (None) when the provider omitted it or sent
    something unparseable.
    """

    # Identity (required)
    natural_key: str = Field(..., min_length=1)
    unit: int
    category_code: str = Field(..., min_length=1, max_length=50)

    # Time
    captured_at: Optional[datetime] = None
    earth_date: Optional[date] = None
    date_taken_mars: Optional[str] = None
    mars_time_hour: Optional[int] = Field(None, ge=0, le=24)
    date_received: Optional[datetime] = None

    # Image locators
    img_src_full: Optional[str] = None
    img_src_small: Optional[str] = None
    img_src_medium: Optional[str] = None
    img_src_large: Optional[str] = None

    # Dimensions
    width: Optional[int] = None
    height: Optional[int] = None
    sample_type: Optional[str] = None

    # Location
    site: Optional[int] = None
    drive: Optional[int] = None
    xyz: Optional[str] = None

    # Orientation telemetry
    mast_az: Optional[float] = None
    mast_el: Optional[float] = None
    camera_vector: Optional[str] = None
    camera_position: Optional[str] = None
    camera_model_type: Optional[str] = None
    attitude: Optional[str] = None
    spacecraft_clock: Optional[float] = None
    filter_name: Optional[str] = None

    # Descriptive
    title: Optional[str] = None
    caption: Optional[str] = None
    credit: Optional[str] = None

    raw_payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("natural_key")
    @classmethod
    def clean_natural_key(cls, v):
        """Natural keys are opaque; only surrounding whitespace is removed"""
        v = v.strip()
        if not v:
            raise ValueError("natural_key cannot be empty after stripping")
        return v

    @field_validator("category_code")
    @classmethod
    def clean_category_code(cls, v):
        """Category codes are stored upper-case"""
        v = v.strip().upper()
        if not v:
            raise ValueError("category_code cannot be empty after stripping")
        return v

    @field_validator("raw_payload", mode="before")
    @classmethod
    def clean_raw_payload(cls, v):
        """Ensure raw payload is a dict"""
        if not isinstance(v, dict):
            return {}
        return v

    def to_row(self, source_id: int, category_id: int) -> Dict[str, Any]:
        """Column mapping for the records table"""
        row = self.model_dump(exclude={"category_code"})
        row["source_id"] = source_id
        row["category_id"] = category_id
        return row
