"""
Source extractors: one pure function per provider schema.

``EXTRACTORS`` maps a source name to its ``extract(payload, unit=None, *,
min_dimension=None)`` function. Adding a source is a new module plus one
registry entry.
"""

from typing import Any, Callable, Dict, List, Optional

from ingestion.extractors import curiosity, perseverance
from schemas.record import CandidateRecord

Extractor = Callable[..., List[CandidateRecord]]

EXTRACTORS: Dict[str, Extractor] = {
    perseverance.SOURCE_NAME: perseverance.extract,
    curiosity.SOURCE_NAME: curiosity.extract,
}


def get_extractor(source_name: str) -> Extractor:
    try:
        return EXTRACTORS[source_name]
    except KeyError:
        raise KeyError(f"No extractor registered for source '{source_name}'") from None


def extract(source_name: str, payload: Any, unit: Optional[int] = None, **kwargs) -> List[CandidateRecord]:
    return get_extractor(source_name)(payload, unit, **kwargs)


__all__ = ["EXTRACTORS", "Extractor", "get_extractor", "extract"]
