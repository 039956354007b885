"""
Defensive field parsers shared by the source extractors.

Every helper returns None instead of raising when the value is missing,
null, or of an unexpected type. Providers send numbers as strings, ids as
either ints or strings, and vectors as either strings or arrays.
"""

import json
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Tuple

DIMENSION_RE = re.compile(r"\((\d+),\s*(\d+)\)")
SUBFRAME_RECT_RE = re.compile(r"\((\d+),\s*(\d+),\s*(\d+),\s*(\d+)\)")
MARS_TIME_RE = re.compile(r"M(\d{1,2}):(\d{2})")

SECONDS_PER_SOL = 88775.244


def get_path(obj: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def as_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return int(number) if number.is_integer() else None
    return None


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def as_text(value: Any) -> Optional[str]:
    """Vectors and coordinates arrive as strings or arrays; store as text."""
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return as_str(value)


def as_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into naive UTC."""
    text = as_str(value)
    if text is None:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_dimension(value: Any) -> Tuple[Optional[int], Optional[int]]:
    """``"(width,height)"`` → (width, height)"""
    text = as_str(value)
    match = DIMENSION_RE.search(text) if text else None
    if not match:
        return None, None
    return int(match.group(1)), int(match.group(2))


def parse_subframe_rect(value: Any) -> Tuple[Optional[int], Optional[int]]:
    """``"(x,y,width,height)"`` → (width, height)"""
    text = as_str(value)
    match = SUBFRAME_RECT_RE.search(text) if text else None
    if not match:
        return None, None
    return int(match.group(3)), int(match.group(4))


def mars_time_hour(value: Any) -> Optional[int]:
    """Hour of local mean solar time from e.g. ``"Sol-04100M14:30:00.000"``."""
    text = as_str(value)
    match = MARS_TIME_RE.search(text) if text else None
    if not match:
        return None
    hour = int(match.group(1))
    return hour if 0 <= hour <= 24 else None


def earth_date_from_sol(sol: int, landing_date: date) -> date:
    return landing_date + timedelta(seconds=sol * SECONDS_PER_SOL)


def is_below_quality(
    sample_type: Optional[str],
    width: Optional[int],
    height: Optional[int],
    min_dimension: int,
) -> bool:
    """Thumbnail-class: flagged as thumbnail, or a side no larger than min_dimension."""
    if (sample_type or "").strip().lower() == "thumbnail":
        return True
    if width is None or height is None:
        return False
    return width <= min_dimension or height <= min_dimension
