"""Background workers supporting async processing."""

from .accrual_reconciliation import AccrualReconciliationWorker, ReconciliationPassSummary

__all__ = [
    "AccrualReconciliationWorker",
    "ReconciliationPassSummary",
]
