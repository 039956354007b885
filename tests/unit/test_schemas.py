"""
Unit tests for the candidate record schema
"""

import pytest
from pydantic import ValidationError

from schemas.record import CandidateRecord


class TestCandidateRecord:

    def test_cleans_key_and_category(self):
        record = CandidateRecord(natural_key="  NLF_0100  ", unit=100, category_code=" navcam_left ")

        assert record.natural_key == "NLF_0100"
        assert record.category_code == "NAVCAM_LEFT"

    @pytest.mark.parametrize("key", ["", "   "])
    def test_blank_natural_key_rejected(self, key):
        with pytest.raises(ValidationError):
            CandidateRecord(natural_key=key, unit=100, category_code="NAVCAM_LEFT")

    def test_non_dict_raw_payload_becomes_empty(self):
        record = CandidateRecord(natural_key="a", unit=1, category_code="MAHLI", raw_payload=["not", "a", "dict"])

        assert record.raw_payload == {}

    def test_natural_key_has_no_length_cap(self):
        key = "k" * 1000

        assert CandidateRecord(natural_key=key, unit=1, category_code="MAHLI").natural_key == key

    def test_to_row_drops_category_code(self):
        record = CandidateRecord(natural_key="a", unit=7, category_code="MAHLI", width=1024)

        row = record.to_row(source_id=2, category_id=5)

        assert "category_code" not in row
        assert row["natural_key"] == "a"
        assert row["unit"] == 7
        assert row["width"] == 1024
        assert row["source_id"] == 2
        assert row["category_id"] == 5
