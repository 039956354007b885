"""
Pytest configuration and fixtures
"""

from collections import defaultdict
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import create_db_engine, create_session_factory
from ingestion.seed import seed_reference_data
from models.base import Base
import models  # noqa: F401


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite database per test"""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'ingest_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    """Session factory with sources and categories seeded"""
    factory = create_session_factory(test_engine)
    await seed_reference_data(factory)
    return factory


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================================================
# Time
# ============================================================================

class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_sleep():
    return SleepRecorder()


@pytest.fixture
def fake_clock():
    return FakeClock()


# ============================================================================
# Provider payloads
# ============================================================================

@pytest.fixture
def perseverance_item():
    """Factory for one Perseverance raw-images item"""

    def build(
        imageid: Any,
        sol: int = 1000,
        instrument: str = "NAVCAM_LEFT",
        sample_type: str = "Full",
        dimension: Optional[str] = "(1280,960)",
        **overrides,
    ) -> Dict[str, Any]:
        item = {
            "imageid": imageid,
            "sol": sol,
            "camera": {
                "instrument": instrument,
                "filter_name": "UNK",
                "camera_vector": "(-0.0355,0.9993,0.0065)",
                "camera_position": "(0.8,0.63,-1.97)",
                "camera_model_type": "CAHVORE",
            },
            "image_files": {
                "full_res": f"https://mars.nasa.gov/mars2020-raw-images/{imageid}.png",
                "small": f"https://mars.nasa.gov/mars2020-raw-images/{imageid}_320.jpg",
                "medium": f"https://mars.nasa.gov/mars2020-raw-images/{imageid}_800.jpg",
                "large": f"https://mars.nasa.gov/mars2020-raw-images/{imageid}_1200.jpg",
            },
            "extended": {
                "mastAz": "156.098",
                "mastEl": "-10.1652",
                "sclk": "667129493.453",
                "scaleFactor": "4",
                "xyz": "(42.5,-12.25,0.31)",
                "subframeRect": "(1,1,5120,3840)",
                "dimension": dimension,
            },
            "sample_type": sample_type,
            "date_taken_utc": "2024-01-15T10:30:00.000",
            "date_taken_mars": "Sol-01000M14:30:00.000",
            "date_received": "2024-01-16T02:11:00Z",
            "site": 45,
            "drive": "1234",
            "attitude": "(0.4,0.1,-0.2,0.9)",
            "title": f"Mars Perseverance Sol {sol}",
            "caption": "NASA's Mars Perseverance rover acquired this image.",
            "credit": "NASA/JPL-Caltech",
        }
        item.update(overrides)
        return item

    return build


@pytest.fixture
def curiosity_item():
    """Factory for one Curiosity raw_image_items item"""

    def build(
        item_id: Any,
        sol: int = 4100,
        instrument: str = "NAV_LEFT_B",
        sample_type: str = "full",
        subframe_rect: Optional[str] = "(1,1,1024,1024)",
        **overrides,
    ) -> Dict[str, Any]:
        item = {
            "id": item_id,
            "sol": sol,
            "instrument": instrument,
            "https_url": f"https://mars.nasa.gov/msl-raw-images/{item_id}.JPG",
            "date_taken": "2024-01-15T10:30:00.000Z",
            "date_received": "2024-01-16T02:11:00.000Z",
            "camera_vector": "(0.6,0.7,0.1)",
            "camera_position": "(1.1,0.5,-1.9)",
            "camera_model_type": "CAHVOR",
            "site": 106,
            "drive": 2310,
            "xyz": "(12.5,3.2,-0.4)",
            "attitude": "(0.1,0.2,0.3,0.9)",
            "spacecraft_clock": 757123456.789,
            "title": f"Sol {sol}: Left Navigation Camera",
            "description": "This image was taken by Left Navigation Camera.",
            "image_credit": "NASA/JPL-Caltech",
            "extended": {
                "sample_type": sample_type,
                "lmst": f"Sol-0{sol}M14:30:00.000",
                "mast_az": "123.4",
                "mast_el": "-5.5",
                "filter_name": "CLEAR",
                "subframe_rect": subframe_rect,
            },
        }
        item.update(overrides)
        return item

    return build


# ============================================================================
# Provider HTTP stub
# ============================================================================

class ProviderStub:
    """
    Routes requests for both NASA endpoints to scripted responses.

    A script entry is a dict (200 JSON), an int (bare status), an
    httpx.Response, or an exception to raise. Each request consumes one
    entry; the last entry repeats. Unscripted units answer with an empty
    page; unscripted frontier queries answer 503.
    """

    def __init__(self):
        self.scripts: Dict[Tuple, List[Any]] = {}
        self.calls: List[Tuple[str, Optional[int], int]] = []
        self.hits: Dict[Tuple, int] = defaultdict(int)
        self.on_request = None

    # ----- scripting -----

    def set_frontier(self, source: str, unit: int):
        self.scripts[(source, None, 0)] = [self._frontier_payload(source, unit)]

    def fail_frontier(self, source: str, *responses):
        self.scripts[(source, None, 0)] = list(responses) or [503]

    def set_unit(self, source: str, unit: int, *responses, page: int = 0):
        self.scripts[(source, unit, page)] = list(responses)

    @staticmethod
    def page(source: str, items: List[Dict[str, Any]], total: Optional[int] = None) -> Dict[str, Any]:
        if source == "perseverance":
            return {"images": items, "per_page": 100, "page": 0}
        return {"items": items, "total": len(items) if total is None else total, "per_page": 200, "page": 0}

    @staticmethod
    def _frontier_payload(source: str, unit: int) -> Dict[str, Any]:
        if source == "perseverance":
            return {"images": [{"sol": unit, "imageid": "frontier"}]}
        return {"items": [{"sol": unit, "id": 1}], "total": 1}

    def frontier(self, source: str, unit: int) -> Dict[str, Any]:
        return self._frontier_payload(source, unit)

    # ----- transport -----

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_for(self, source: str, unit: Optional[int] = None) -> int:
        return sum(1 for s, u, _ in self.calls if s == source and u == unit)

    def handler(self, request: httpx.Request) -> httpx.Response:
        source, unit, page = self._route(request)
        self.calls.append((source, unit, page))
        if self.on_request is not None:
            self.on_request(source, unit, page)

        key = (source, unit, page)
        script = self.scripts.get(key)
        if not script:
            if unit is None:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json=self.page(source, []))

        index = min(self.hits[key], len(script) - 1)
        self.hits[key] += 1
        entry = script[index]

        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, httpx.Response):
            return entry
        if isinstance(entry, int):
            return httpx.Response(entry, json={"error": f"HTTP {entry}"})
        return httpx.Response(200, json=entry)

    @staticmethod
    def _route(request: httpx.Request) -> Tuple[str, Optional[int], int]:
        params = request.url.params
        page = int(params.get("page", 0))
        if request.url.path.startswith("/rss/api"):
            sol = params.get("sol")
            return "perseverance", int(sol) if sol is not None else None, page
        condition = params.get("condition_2")
        unit = int(condition.split(":")[0]) if condition else None
        return "curiosity", unit, page


@pytest.fixture
def provider():
    return ProviderStub()
