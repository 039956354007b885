"""
Shared plumbing for source extractors: locating the item collection and
turning items into candidates with per-record error isolation.
"""

from typing import Any, Callable, Dict, List, Optional
from pydantic import ValidationError
from core.exceptions import PayloadParseError, RecordParseError
from ingestion.extractors.fields import is_below_quality
from schemas.record import CandidateRecord
import logging

logger = logging.getLogger(__name__)

ItemBuilder = Callable[[Dict[str, Any], Optional[int]], CandidateRecord]


def item_collection(payload: Any, key: str, source_name: str) -> List[Any]:
    """
    Locate the list of items in a provider payload.

    Raises:
        PayloadParseError: Wrong top-level type or missing/non-list collection
    """
    if not isinstance(payload, dict):
        raise PayloadParseError(
            f"Expected a JSON object from {source_name}, got {type(payload).__name__}",
            context={"source_name": source_name},
        )

    items = payload.get(key)
    if not isinstance(items, list):
        raise PayloadParseError(
            f"Payload from {source_name} has no '{key}' list",
            context={"source_name": source_name, "keys": sorted(payload.keys())[:20]},
        )
    return items


def collect_candidates(
    source_name: str,
    items: List[Any],
    build: ItemBuilder,
    unit: Optional[int],
    min_dimension: int,
) -> List[CandidateRecord]:
    """
    Build candidates item by item.

    A bad item is logged and skipped; thumbnail-class items are filtered.
    """
    candidates: List[CandidateRecord] = []
    skipped = 0
    filtered = 0

    for index, item in enumerate(items):
        try:
            if not isinstance(item, dict):
                raise RecordParseError(
                    f"Item is a {type(item).__name__}, not an object",
                    context={"source_name": source_name, "item_index": index},
                )
            candidate = build(item, unit)
        except (RecordParseError, ValidationError) as e:
            skipped += 1
            logger.warning(
                f"Skipping unparseable {source_name} record at index {index}: {e}",
                extra={"source": source_name, "unit": unit, "error_class": "ParseError"},
            )
            continue

        if is_below_quality(candidate.sample_type, candidate.width, candidate.height, min_dimension):
            filtered += 1
            continue

        candidates.append(candidate)

    logger.debug(
        f"Extracted {len(candidates)} candidates from {len(items)} {source_name} items "
        f"({filtered} below quality threshold, {skipped} unparseable)"
    )
    return candidates
