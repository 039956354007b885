"""
Reference data: rovers and their cameras.

Seeding is idempotent; rows that already exist are left untouched, so
categories auto-created by the resolver (and later renamed by hand) survive
a re-seed.
"""

from typing import Dict, List, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.base import SourceStatus
from models.source import Category, Source
import logging

logger = logging.getLogger(__name__)

SOURCES: List[Tuple[str, str, SourceStatus]] = [
    ("perseverance", "Perseverance", SourceStatus.ACTIVE),
    ("curiosity", "Curiosity", SourceStatus.ACTIVE),
    ("opportunity", "Opportunity", SourceStatus.COMPLETE),
    ("spirit", "Spirit", SourceStatus.COMPLETE),
]

_MER_CAMERAS = [
    ("FHAZ", "Front Hazard Avoidance Camera"),
    ("RHAZ", "Rear Hazard Avoidance Camera"),
    ("NAVCAM", "Navigation Camera"),
    ("PANCAM", "Panoramic Camera"),
    ("MINITES", "Miniature Thermal Emission Spectrometer (Mini-TES)"),
    ("ENTRY", "Entry, Descent, and Landing Camera"),
]

CATEGORIES: Dict[str, List[Tuple[str, str]]] = {
    "perseverance": [
        ("EDL_RUCAM", "Rover Up-Look Camera"),
        ("EDL_RDCAM", "Rover Down-Look Camera"),
        ("EDL_DDCAM", "Descent Stage Down-Look Camera"),
        ("EDL_PUCAM1", "Parachute Up-Look Camera A"),
        ("EDL_PUCAM2", "Parachute Up-Look Camera B"),
        ("NAVCAM_LEFT", "Navigation Camera - Left"),
        ("NAVCAM_RIGHT", "Navigation Camera - Right"),
        ("MCZ_RIGHT", "Mast Camera Zoom - Right"),
        ("MCZ_LEFT", "Mast Camera Zoom - Left"),
        ("FRONT_HAZCAM_LEFT_A", "Front Hazard Avoidance Camera - Left"),
        ("FRONT_HAZCAM_RIGHT_A", "Front Hazard Avoidance Camera - Right"),
        ("REAR_HAZCAM_LEFT", "Rear Hazard Avoidance Camera - Left"),
        ("REAR_HAZCAM_RIGHT", "Rear Hazard Avoidance Camera - Right"),
        ("SKYCAM", "MEDA Skycam"),
        ("SHERLOC_WATSON", "SHERLOC WATSON Camera"),
        ("SUPERCAM_RMI", "SuperCam Remote Micro Imager"),
        ("LCAM", "Lander Vision System Camera"),
    ],
    "curiosity": [
        ("FHAZ", "Front Hazard Avoidance Camera"),
        ("RHAZ", "Rear Hazard Avoidance Camera"),
        ("MAST", "Mast Camera"),
        ("CHEMCAM", "Chemistry and Camera Complex"),
        ("MAHLI", "Mars Hand Lens Imager"),
        ("MARDI", "Mars Descent Imager"),
        ("NAVCAM", "Navigation Camera"),
    ],
    "opportunity": _MER_CAMERAS,
    "spirit": _MER_CAMERAS,
}


async def seed_reference_data(session_factory: async_sessionmaker) -> Dict[str, int]:
    """Insert missing sources and categories. Returns counts of rows created."""
    created = {"sources": 0, "categories": 0}

    async with session_factory() as session:
        existing = {
            s.name: s for s in (await session.execute(select(Source))).scalars().all()
        }
        for name, display_name, status in SOURCES:
            if name in existing:
                continue
            source = Source(
                name=name,
                display_name=display_name,
                status=status.value,
                is_active=status == SourceStatus.ACTIVE,
            )
            session.add(source)
            existing[name] = source
            created["sources"] += 1
            logger.info(f"Seeding source: {display_name}")
        await session.flush()

        for name, cameras in CATEGORIES.items():
            source = existing[name]
            result = await session.execute(select(Category.code).where(Category.source_id == source.id))
            known = set(result.scalars().all())
            for code, display_name in cameras:
                if code in known:
                    continue
                session.add(Category(source_id=source.id, code=code, display_name=display_name))
                created["categories"] += 1

        await session.commit()

    logger.info(f"Seeded {created['sources']} sources and {created['categories']} categories")
    return created
