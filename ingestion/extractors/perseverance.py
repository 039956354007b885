"""
Extractor for the Perseverance raw-images feed.

Payload shape: ``{"images": [...], ...}``. Camera metadata is nested under
``camera``, image locators under ``image_files`` and telemetry under
``extended``. Image ids are strings such as
``"NLF_0100_0675255151_123ECM_N0040048NCAM00503_01_295J"`` (occasionally
ints in older data).
"""

from datetime import date
from typing import Any, Dict, List, Optional
from core.config import settings
from core.exceptions import RecordParseError
from ingestion.extractors.common import collect_candidates, item_collection
from ingestion.extractors.fields import (
    as_datetime,
    as_float,
    as_int,
    as_str,
    as_text,
    earth_date_from_sol,
    get_path,
    mars_time_hour,
    parse_dimension,
    parse_subframe_rect,
)
from schemas.record import CandidateRecord

SOURCE_NAME = "perseverance"
LANDING_DATE = date(2021, 2, 18)


def dimensions(extended: Any):
    """``dimension`` first, then ``subframeRect``. ``scaleFactor`` is never a size."""
    width, height = parse_dimension(get_path(extended, "dimension"))
    if width is None:
        width, height = parse_subframe_rect(get_path(extended, "subframeRect"))
    return width, height


def build_candidate(item: Dict[str, Any], unit: Optional[int] = None) -> CandidateRecord:
    natural_key = as_str(item.get("imageid"))
    if natural_key is None:
        raise RecordParseError("Missing imageid", context={"source_name": SOURCE_NAME, "unit": unit})

    instrument = as_str(get_path(item, "camera", "instrument"))
    if instrument is None:
        raise RecordParseError(
            "Missing camera.instrument",
            context={"source_name": SOURCE_NAME, "natural_key": natural_key},
        )

    sol = as_int(item.get("sol"))
    if sol is None:
        sol = unit
    if sol is None:
        raise RecordParseError("Missing sol", context={"source_name": SOURCE_NAME, "natural_key": natural_key})

    camera = item.get("camera") or {}
    extended = item.get("extended") or {}
    image_files = item.get("image_files") or {}

    captured_at = as_datetime(item.get("date_taken_utc")) or as_datetime(item.get("date_taken"))
    date_taken_mars = as_str(item.get("date_taken_mars"))
    width, height = dimensions(extended)

    return CandidateRecord(
        natural_key=natural_key,
        unit=sol,
        category_code=instrument,
        captured_at=captured_at,
        earth_date=captured_at.date() if captured_at else earth_date_from_sol(sol, LANDING_DATE),
        date_taken_mars=date_taken_mars,
        mars_time_hour=mars_time_hour(date_taken_mars),
        date_received=as_datetime(item.get("date_received")),
        img_src_full=as_str(get_path(image_files, "full_res")),
        img_src_small=as_str(get_path(image_files, "small")),
        img_src_medium=as_str(get_path(image_files, "medium")),
        img_src_large=as_str(get_path(image_files, "large")),
        width=width,
        height=height,
        sample_type=as_str(item.get("sample_type")),
        site=as_int(item.get("site")),
        drive=as_int(item.get("drive")),
        xyz=as_text(get_path(extended, "xyz")),
        mast_az=as_float(get_path(extended, "mastAz")),
        mast_el=as_float(get_path(extended, "mastEl")),
        camera_vector=as_text(get_path(camera, "camera_vector")),
        camera_position=as_text(get_path(camera, "camera_position")),
        camera_model_type=as_str(get_path(camera, "camera_model_type")),
        attitude=as_text(item.get("attitude")),
        spacecraft_clock=as_float(get_path(extended, "sclk")),
        filter_name=as_str(get_path(camera, "filter_name")),
        title=as_str(item.get("title")),
        caption=as_str(item.get("caption")),
        credit=as_str(item.get("credit")),
        raw_payload=item,
    )


def extract(payload: Any, unit: Optional[int] = None, *, min_dimension: Optional[int] = None) -> List[CandidateRecord]:
    """Map one raw-images page onto candidate records."""
    items = item_collection(payload, "images", SOURCE_NAME)
    threshold = settings.MIN_IMAGE_DIMENSION if min_dimension is None else min_dimension
    return collect_candidates(SOURCE_NAME, items, build_candidate, unit, threshold)
