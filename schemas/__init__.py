"""
Pydantic schemas for data validation.

Schemas:
    record: CandidateRecord, the canonical shape produced by every source
        extractor and consumed by the idempotency guard and batch writer

Usage:
    from schemas.record import CandidateRecord
"""

__all__ = [
    "CandidateRecord",
]
