"""
Run aggregator: per-source state, unit outcomes and run-level success.

Per source:  PENDING → RUNNING → {COMPLETED, FAILED}

FAILED is reached only when no starting unit can be computed. Unit-level
failures are recorded as UnitOutcome entries and the source still
completes. The run succeeds only if every source completed and the run was
not cancelled.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from core.exceptions import IngestionError, TRANSIENT_ERROR_CLASSES
from ingestion.scheduler import UnitPlan

MESSAGE_LIMIT = 200


class SourceState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    SourceState.PENDING: {SourceState.RUNNING},
    SourceState.RUNNING: {SourceState.COMPLETED, SourceState.FAILED},
    SourceState.COMPLETED: set(),
    SourceState.FAILED: set(),
}


def classify(exc: BaseException) -> str:
    """Error classification label for a unit failure."""
    if isinstance(exc, IngestionError):
        return exc.error_class
    return "Unknown"


@dataclass
class UnitOutcome:
    """One failed unit."""
    source: str
    unit: int
    error_class: str
    message: str
    status_code: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_exception(cls, source: str, unit: int, exc: BaseException) -> "UnitOutcome":
        message = exc.message if isinstance(exc, IngestionError) else f"{type(exc).__name__}: {exc}"
        return cls(
            source=source,
            unit=unit,
            error_class=classify(exc),
            message=message[:MESSAGE_LIMIT],
            status_code=getattr(exc, "status_code", None),
        )

    @property
    def is_transient(self) -> bool:
        return self.error_class in TRANSIENT_ERROR_CLASSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "unit": self.unit,
            "error_class": self.error_class,
            "message": self.message,
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SourceReport:
    """Progress and outcome of one source within a run."""
    source: str
    state: SourceState = SourceState.PENDING
    plan: Optional[UnitPlan] = None
    units_attempted: int = 0
    units_succeeded: int = 0
    records_inserted: int = 0
    failures: Dict[int, UnitOutcome] = field(default_factory=dict)
    error: Optional[str] = None
    cancelled: bool = False
    duration_seconds: float = 0.0

    def transition(self, new_state: SourceState):
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"Illegal source state transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def record_success(self, unit: int, inserted: int):
        # A unit that failed earlier and succeeded on a retry round is no longer failed
        self.failures.pop(unit, None)
        self.units_succeeded += 1
        self.records_inserted += inserted

    def record_failure(self, outcome: UnitOutcome):
        self.failures[outcome.unit] = outcome

    @property
    def failed_units(self) -> List[UnitOutcome]:
        return [self.failures[unit] for unit in sorted(self.failures)]

    @property
    def units_failed(self) -> int:
        return len(self.failures)

    @property
    def used_fallback(self) -> bool:
        return bool(self.plan and self.plan.used_fallback)

    @property
    def status(self) -> str:
        """success / partial / failed, as persisted in run history."""
        if self.state != SourceState.COMPLETED:
            return "failed"
        if self.failures or self.cancelled:
            return "partial"
        return "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "state": self.state.value,
            "start_unit": self.plan.start_unit if self.plan else None,
            "end_unit": self.plan.end_unit if self.plan else None,
            "used_fallback": self.used_fallback,
            "units_attempted": self.units_attempted,
            "units_succeeded": self.units_succeeded,
            "units_failed": self.units_failed,
            "records_inserted": self.records_inserted,
            "failed_units": [o.to_dict() for o in self.failed_units],
            "error": self.error,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class RunReport:
    """Aggregate of every source report for one run."""
    sources: List[SourceReport] = field(default_factory=list)
    cancelled: bool = False
    started_at: datetime = field(default_factory=datetime.utcnow)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        if self.cancelled:
            return False
        return all(s.state == SourceState.COMPLETED for s in self.sources)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def source(self, name: str) -> Optional[SourceReport]:
        return next((s for s in self.sources if s.source == name), None)

    @property
    def records_inserted(self) -> int:
        return sum(s.records_inserted for s in self.sources)

    def summary(self) -> Dict[str, Any]:
        """Final machine-parseable summary record."""
        return {
            "sources_attempted": len(self.sources),
            "sources_completed": sum(1 for s in self.sources if s.state == SourceState.COMPLETED),
            "sources_failed": [s.source for s in self.sources if s.state == SourceState.FAILED],
            "units_attempted": sum(s.units_attempted for s in self.sources),
            "units_succeeded": sum(s.units_succeeded for s in self.sources),
            "units_failed": sum(s.units_failed for s in self.sources),
            "records_inserted": self.records_inserted,
            "duration_seconds": round(self.duration_seconds, 3),
            "fallback_sources": [s.source for s in self.sources if s.used_fallback],
            "cancelled": self.cancelled,
            "success": self.success,
        }
