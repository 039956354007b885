"""
Source profiles: everything that differs between provider endpoints.

A profile is plain data plus small functions (query parameters per unit and
page, frontier query and its parsing, paging rule, extractor). The runner,
scheduler and fetch client are source-agnostic and only ever talk to a
profile.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional
from core.config import settings
from core.exceptions import PayloadParseError
from ingestion.extractors import curiosity, perseverance
from ingestion.extractors.fields import as_int, get_path


@dataclass(frozen=True)
class SourceProfile:
    """
    Attributes:
        name: Lowercase source key, matches ``sources.name``
        display_name: Human-readable name used when seeding
        base_url: Endpoint for both unit and frontier queries
        per_page: Items requested per page
        unit_params: (unit, page) -> query params for one page of a unit
        frontier_params: () -> query params for the latest-unit query
        parse_frontier: payload -> latest unit number
        has_more: (payload, page) -> whether another page exists
        extract: extractor function for this provider schema
        min_unit: Lowest valid unit (sols start at 0 or 1 depending on mission)
        empty_on_not_found: Provider answers 404 for units without photos
        landing_date: Mission landing date
    """
    name: str
    display_name: str
    base_url: str
    per_page: int
    unit_params: Callable[[int, int], Dict[str, Any]]
    frontier_params: Callable[[], Dict[str, Any]]
    parse_frontier: Callable[[Any], int]
    has_more: Callable[[Any, int], bool]
    extract: Callable[..., list]
    min_unit: int = 0
    empty_on_not_found: bool = True
    landing_date: Optional[date] = None

    @property
    def timeout(self) -> float:
        return settings.timeout_for(self.name)


def _first_item_unit(payload: Any, key: str, source_name: str) -> int:
    items = get_path(payload, key)
    if not isinstance(items, list) or not items:
        raise PayloadParseError(
            f"Frontier query for {source_name} returned no '{key}'",
            context={"source_name": source_name},
        )
    unit = as_int(get_path(items[0], "sol"))
    if unit is None:
        raise PayloadParseError(
            f"Frontier query for {source_name} returned an item without a sol",
            context={"source_name": source_name},
        )
    return unit


# ============================================================================
# Perseverance: mars.nasa.gov raw-images feed
# ============================================================================

PERSEVERANCE_PER_PAGE = 100


def _perseverance_unit_params(unit: int, page: int) -> Dict[str, Any]:
    return {
        "feed": "raw_images",
        "category": "mars2020",
        "feedtype": "json",
        "sol": unit,
        "num": PERSEVERANCE_PER_PAGE,
        "page": page,
    }


def _perseverance_frontier_params() -> Dict[str, Any]:
    return {
        "feed": "raw_images",
        "category": "mars2020",
        "feedtype": "json",
        "num": 1,
        "page": 0,
        "order": "sol desc",
    }


def _perseverance_has_more(payload: Any, page: int) -> bool:
    # A full page means there may be another one
    images = get_path(payload, "images")
    return isinstance(images, list) and len(images) >= PERSEVERANCE_PER_PAGE


PERSEVERANCE = SourceProfile(
    name=perseverance.SOURCE_NAME,
    display_name="Perseverance",
    base_url="https://mars.nasa.gov/rss/api/",
    per_page=PERSEVERANCE_PER_PAGE,
    unit_params=_perseverance_unit_params,
    frontier_params=_perseverance_frontier_params,
    parse_frontier=lambda payload: _first_item_unit(payload, "images", perseverance.SOURCE_NAME),
    has_more=_perseverance_has_more,
    extract=perseverance.extract,
    min_unit=0,
    landing_date=perseverance.LANDING_DATE,
)


# ============================================================================
# Curiosity: mars.nasa.gov raw_image_items API
# ============================================================================

CURIOSITY_PER_PAGE = 200


def _curiosity_unit_params(unit: int, page: int) -> Dict[str, Any]:
    return {
        "order": "sol desc",
        "per_page": CURIOSITY_PER_PAGE,
        "page": page,
        "condition_1": "msl:mission",
        "condition_2": f"{unit}:sol:in",
    }


def _curiosity_frontier_params() -> Dict[str, Any]:
    return {
        "order": "sol desc",
        "per_page": 1,
        "page": 0,
        "condition_1": "msl:mission",
    }


def _curiosity_has_more(payload: Any, page: int) -> bool:
    total = as_int(get_path(payload, "total"))
    if total is None:
        items = get_path(payload, "items")
        return isinstance(items, list) and len(items) >= CURIOSITY_PER_PAGE
    return (page + 1) * CURIOSITY_PER_PAGE < total


CURIOSITY = SourceProfile(
    name=curiosity.SOURCE_NAME,
    display_name="Curiosity",
    base_url="https://mars.nasa.gov/api/v1/raw_image_items/",
    per_page=CURIOSITY_PER_PAGE,
    unit_params=_curiosity_unit_params,
    frontier_params=_curiosity_frontier_params,
    parse_frontier=lambda payload: _first_item_unit(payload, "items", curiosity.SOURCE_NAME),
    has_more=_curiosity_has_more,
    extract=curiosity.extract,
    min_unit=0,
    landing_date=curiosity.LANDING_DATE,
)


SOURCE_REGISTRY: Dict[str, SourceProfile] = {
    PERSEVERANCE.name: PERSEVERANCE,
    CURIOSITY.name: CURIOSITY,
}


def get_profiles(names: Optional[Iterable[str]] = None) -> List[SourceProfile]:
    """Resolve source names (default: ACTIVE_SOURCES) to profiles."""
    selected = list(names) if names is not None else settings.ACTIVE_SOURCES
    unknown = [name for name in selected if name not in SOURCE_REGISTRY]
    if unknown:
        raise ValueError(f"Unknown source(s): {', '.join(unknown)}. Known: {', '.join(SOURCE_REGISTRY)}")
    return [SOURCE_REGISTRY[name] for name in selected]
