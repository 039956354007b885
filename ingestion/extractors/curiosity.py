"""
Extractor for the Curiosity raw image items API.

Payload shape: ``{"items": [...], "total": N, ...}``. Items are flat with an
``extended`` object holding sample type, local solar time and mast
orientation. Ids are integers. Instrument names are finer-grained than the
camera catalogue (``NAV_LEFT_B``, ``MAST_RIGHT``...) and are mapped onto
camera codes.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple
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
    parse_subframe_rect,
)
from schemas.record import CandidateRecord

SOURCE_NAME = "curiosity"
LANDING_DATE = date(2012, 8, 6)

INSTRUMENT_PREFIXES = (
    ("MAST_", "MAST"),
    ("NAV_", "NAVCAM"),
    ("FHAZ_", "FHAZ"),
    ("RHAZ_", "RHAZ"),
    ("CHEMCAM_", "CHEMCAM"),
)

SAMPLE_TYPE_SIZES = {
    "thumbnail": (160, 144),
    "subframe": (1024, 1024),
    "full": (1024, 1024),
    "downsampled": (800, 600),
    "chemcam prc": (1024, 1024),
    "mixed": (1024, 1024),
}
DEFAULT_SIZE = (512, 512)


def map_instrument(instrument: str) -> str:
    """Map a raw instrument name onto a camera code; unknown names pass through."""
    name = instrument.strip().upper()
    if name == "MASTCAM":
        return "MAST"
    for prefix, code in INSTRUMENT_PREFIXES:
        if name.startswith(prefix):
            return code
    return name


def dimensions(extended: Any, sample_type: Optional[str]) -> Tuple[int, int]:
    """``subframe_rect`` when present, else the typical size for the sample type."""
    width, height = parse_subframe_rect(get_path(extended, "subframe_rect"))
    if width is not None:
        return width, height
    return SAMPLE_TYPE_SIZES.get((sample_type or "").strip().lower(), DEFAULT_SIZE)


def build_candidate(item: Dict[str, Any], unit: Optional[int] = None) -> CandidateRecord:
    natural_key = as_str(item.get("id"))
    if natural_key is None:
        raise RecordParseError("Missing id", context={"source_name": SOURCE_NAME, "unit": unit})

    instrument = as_str(item.get("instrument"))
    if instrument is None:
        raise RecordParseError(
            "Missing instrument",
            context={"source_name": SOURCE_NAME, "natural_key": natural_key},
        )

    sol = as_int(item.get("sol"))
    if sol is None:
        sol = unit
    if sol is None:
        raise RecordParseError("Missing sol", context={"source_name": SOURCE_NAME, "natural_key": natural_key})

    extended = item.get("extended") or {}
    sample_type = as_str(get_path(extended, "sample_type"))
    lmst = as_str(get_path(extended, "lmst"))
    captured_at = as_datetime(item.get("date_taken"))
    width, height = dimensions(extended, sample_type)

    return CandidateRecord(
        natural_key=natural_key,
        unit=sol,
        category_code=map_instrument(instrument),
        captured_at=captured_at,
        earth_date=captured_at.date() if captured_at else earth_date_from_sol(sol, LANDING_DATE),
        date_taken_mars=lmst,
        mars_time_hour=mars_time_hour(lmst),
        date_received=as_datetime(item.get("date_received")),
        img_src_full=as_str(item.get("https_url")),
        img_src_small=as_str(get_path(extended, "url_list")),
        width=width,
        height=height,
        sample_type=sample_type,
        site=as_int(item.get("site")),
        drive=as_int(item.get("drive")),
        xyz=as_text(item.get("xyz")),
        mast_az=as_float(get_path(extended, "mast_az")),
        mast_el=as_float(get_path(extended, "mast_el")),
        camera_vector=as_text(item.get("camera_vector")),
        camera_position=as_text(item.get("camera_position")),
        camera_model_type=as_str(item.get("camera_model_type")),
        attitude=as_text(item.get("attitude")),
        spacecraft_clock=as_float(item.get("spacecraft_clock")),
        filter_name=as_str(get_path(extended, "filter_name")),
        title=as_str(item.get("title")),
        caption=as_str(item.get("description")),
        credit=as_str(item.get("image_credit")),
        raw_payload=item,
    )


def extract(payload: Any, unit: Optional[int] = None, *, min_dimension: Optional[int] = None) -> List[CandidateRecord]:
    """Map one raw_image_items page onto candidate records."""
    items = item_collection(payload, "items", SOURCE_NAME)
    threshold = settings.MIN_IMAGE_DIMENSION if min_dimension is None else min_dimension
    return collect_candidates(SOURCE_NAME, items, build_candidate, unit, threshold)
