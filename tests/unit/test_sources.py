"""
Unit tests for source profiles, settings and logging
"""

import json
import logging
import sys

import pytest

from core.config import Settings
from core.exceptions import PayloadParseError
from core.logging import json_formatter
from ingestion.sources import CURIOSITY, PERSEVERANCE, SOURCE_REGISTRY, get_profiles


class TestSourceProfiles:

    def test_perseverance_unit_params(self):
        params = PERSEVERANCE.unit_params(1000, 2)

        assert params["sol"] == 1000
        assert params["page"] == 2
        assert params["num"] == 100
        assert params["category"] == "mars2020"

    def test_curiosity_unit_params(self):
        params = CURIOSITY.unit_params(4100, 0)

        assert params["condition_2"] == "4100:sol:in"
        assert params["per_page"] == 200

    def test_frontier_queries_ask_for_one_item(self):
        assert PERSEVERANCE.frontier_params()["num"] == 1
        assert CURIOSITY.frontier_params()["per_page"] == 1
        assert "condition_2" not in CURIOSITY.frontier_params()

    def test_parse_frontier(self):
        assert PERSEVERANCE.parse_frontier({"images": [{"sol": "1001"}]}) == 1001
        assert CURIOSITY.parse_frontier({"items": [{"sol": 4100}], "total": 1}) == 4100

        with pytest.raises(PayloadParseError):
            CURIOSITY.parse_frontier({"items": []})
        with pytest.raises(PayloadParseError):
            PERSEVERANCE.parse_frontier({"images": [{"imageid": "x"}]})

    def test_perseverance_paging(self):
        assert PERSEVERANCE.has_more({"images": [{}] * 100}, 0)
        assert not PERSEVERANCE.has_more({"images": [{}] * 99}, 0)

    def test_curiosity_paging_uses_total(self):
        assert CURIOSITY.has_more({"items": [{}] * 200, "total": 450}, 1)
        assert not CURIOSITY.has_more({"items": [{}] * 50, "total": 450}, 2)
        assert not CURIOSITY.has_more({"items": [{}] * 10}, 0)

    def test_timeouts_differ_per_source(self):
        assert PERSEVERANCE.timeout == 120.0
        assert CURIOSITY.timeout == 30.0

    def test_get_profiles(self):
        assert get_profiles(["curiosity"]) == [CURIOSITY]
        assert [p.name for p in get_profiles()] == ["perseverance", "curiosity"]

        with pytest.raises(ValueError, match="sojourner"):
            get_profiles(["sojourner"])

    def test_registry(self):
        assert set(SOURCE_REGISTRY) == {"perseverance", "curiosity"}


class TestSettings:

    def test_timeout_for_unknown_source_uses_default(self):
        settings = Settings(DEFAULT_TIMEOUT_SECONDS=15.0)

        assert settings.timeout_for("spirit") == 15.0

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("LOOKBACK_UNITS", "3")
        monkeypatch.setenv("ACTIVE_SOURCES", '["curiosity"]')

        settings = Settings()

        assert settings.LOOKBACK_UNITS == 3
        assert settings.ACTIVE_SOURCES == ["curiosity"]


class TestJsonFormatter:

    def test_merges_extra_fields(self):
        record = logging.LogRecord("ingestion.runner", logging.WARNING, __file__, 1, "Unit failed", None, None)
        record.source = "curiosity"
        record.unit = 4100
        record.error_class = "HttpTransient"

        line = json.loads(json_formatter().format(record))

        assert line["message"] == "Unit failed"
        assert line["level"] == "warning"
        assert line["logger"] == "ingestion.runner"
        assert line["source"] == "curiosity"
        assert line["unit"] == 4100
        assert line["error_class"] == "HttpTransient"
        assert "msg" not in line
        assert "_record" not in line
        assert line["timestamp"].endswith("Z")

    def test_event_extra_does_not_replace_message(self):
        record = logging.LogRecord("ingestion.runner", logging.INFO, __file__, 1, "Run finished", None, None)
        record.event = "ingestion_summary"
        record.summary = {"status": "success", "records_inserted": 3}

        line = json.loads(json_formatter().format(record))

        assert line["message"] == "Run finished"
        assert line["event"] == "ingestion_summary"
        assert line["summary"] == {"status": "success", "records_inserted": 3}

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        line = json.loads(json_formatter().format(record))

        assert "RuntimeError: boom" in line["exception"]
