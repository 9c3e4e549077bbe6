"""Accrual system integration."""

from .client import (  # noqa: F401
    MAX_ACCRUAL,
    AccrualClient,
    AccrualFinal,
    AccrualPending,
    AccrualRateLimited,
    AccrualResult,
    AccrualServerFault,
    AccrualTransportError,
    classify_payload,
    classify_response,
    parse_retry_after,
)
