"""Runtime counters for the accrual reconciliation worker."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AccrualWorkerMetrics:
    """In-memory metrics owned by one worker instance."""

    passes_started: int = 0
    passes_completed: int = 0
    passes_failed: int = 0
    orders_queried: int = 0
    orders_finalized: int = 0
    signals_received: int = 0
    consecutive_faulty_passes: int = 0
    verdicts: Counter = field(default_factory=Counter)
    last_pass_started_at: datetime | None = None
    last_pass_finished_at: datetime | None = None
    last_pass_duration_seconds: float | None = None
    last_backoff_seconds: float | None = None
    last_error: str | None = None
    last_error_at: datetime | None = None

    def record_pass_started(self) -> datetime:
        started = _utcnow()
        self.passes_started += 1
        self.last_pass_started_at = started
        return started

    def record_pass_finished(self, started: datetime, *, failed: bool) -> None:
        finished = _utcnow()
        if failed:
            self.passes_failed += 1
        else:
            self.passes_completed += 1
        self.last_pass_finished_at = finished
        self.last_pass_duration_seconds = (finished - started).total_seconds()

    def record_verdict(self, verdict: str) -> None:
        self.orders_queried += 1
        self.verdicts[verdict] += 1

    def record_error(self, message: str) -> None:
        self.last_error = message
        self.last_error_at = _utcnow()

    def snapshot(self) -> dict[str, Any]:
        return {
            "passes_started": self.passes_started,
            "passes_completed": self.passes_completed,
            "passes_failed": self.passes_failed,
            "orders_queried": self.orders_queried,
            "orders_finalized": self.orders_finalized,
            "signals_received": self.signals_received,
            "consecutive_faulty_passes": self.consecutive_faulty_passes,
            "verdicts": dict(self.verdicts),
            "last_pass_started_at": self.last_pass_started_at.isoformat() if self.last_pass_started_at else None,
            "last_pass_finished_at": self.last_pass_finished_at.isoformat() if self.last_pass_finished_at else None,
            "last_pass_duration_seconds": self.last_pass_duration_seconds,
            "last_backoff_seconds": self.last_backoff_seconds,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
        }


__all__ = ["AccrualWorkerMetrics"]
