"""Coalescing background worker that reconciles live orders with the accrual system."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Protocol

from loguru import logger
from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gophermart_api.core.settings import settings
from gophermart_api.models.order import OrderStatusEnum
from gophermart_api.observability.accrual import AccrualWorkerMetrics
from gophermart_api.services.accrual import (
    AccrualFinal,
    AccrualPending,
    AccrualRateLimited,
    AccrualResult,
    AccrualServerFault,
    AccrualTransportError,
)
from gophermart_api.services.ledger import OrderLedgerStore

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]

_tracer = trace.get_tracer(__name__)
# Exponent ceiling so the delay product stays a finite float.
_MAX_BACKOFF_EXPONENT = 32


class AccrualQueryClient(Protocol):
    async def query(self, order: str) -> AccrualResult:  # pragma: no cover - protocol
        ...


@dataclass
class ReconciliationPassSummary:
    """Outcome of one pass over the live backlog."""

    queried: int = 0
    finalized: int = 0
    pending: int = 0
    faults: int = 0
    retry_after: float | None = None
    store_failed: bool = False

    @property
    def faulty(self) -> bool:
        return self.faults > 0 or self.store_failed


class AccrualReconciliationWorker:
    """Drains NEW/PROCESSING orders against the accrual system on demand.

    ``signal()`` sets a single-slot pending flag: any number of signals before
    the next pass collapse into one pass, and a signal that lands while a pass
    is running yields exactly one more pass afterwards.
    """

    # meta: worker: accrual-reconciliation

    def __init__(
        self,
        session_factory: SessionFactory,
        accrual_client: AccrualQueryClient,
        *,
        backoff_base_seconds: float | None = None,
        backoff_max_seconds: float | None = None,
        pending_recheck_seconds: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._client = accrual_client
        self.backoff_base_seconds = (
            settings.accrual_backoff_base_seconds if backoff_base_seconds is None else backoff_base_seconds
        )
        self.backoff_max_seconds = (
            settings.accrual_backoff_max_seconds if backoff_max_seconds is None else backoff_max_seconds
        )
        self.pending_recheck_seconds = (
            settings.accrual_pending_recheck_seconds if pending_recheck_seconds is None else pending_recheck_seconds
        )
        self._pending = asyncio.Event()
        self._stopping = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._metrics = AccrualWorkerMetrics()

    @property
    def metrics(self) -> AccrualWorkerMetrics:
        return self._metrics

    @property
    def is_running(self) -> bool:
        """True while the loop task is alive; a task that died reports False."""
        return self._task is not None and not self._task.done()

    @property
    def has_pending_signal(self) -> bool:
        return self._pending.is_set()

    def signal(self) -> None:
        """Hint that live orders may exist. Never blocks; safe from any thread."""

        loop = self._loop
        if loop is None or loop.is_closed():
            # Not started yet: the flag is kept and picked up by the first pass.
            self._mark_pending()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._mark_pending()
        else:
            loop.call_soon_threadsafe(self._mark_pending)

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._loop = asyncio.get_running_loop()
        self._stopping = False
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Accrual reconciliation worker started",
            backoff_base_seconds=self.backoff_base_seconds,
            backoff_max_seconds=self.backoff_max_seconds,
        )
        # Orders left live by a previous process are picked up right away.
        self.signal()

    async def stop(self) -> None:
        """Let the in-flight pass finish, then exit; a not-yet-started pass is dropped."""

        if not self._task:
            return
        self._stopping = True
        self._cancel_retry()
        self._pending.set()
        try:
            await self._task
        except Exception as exc:
            logger.error("Accrual reconciliation loop had exited with an error", error=str(exc))
        self._task = None
        logger.info("Accrual reconciliation worker stopped")

    async def run_once(self) -> ReconciliationPassSummary:
        """Query every live order once and apply the verdicts."""

        summary = ReconciliationPassSummary()
        started = self._metrics.record_pass_started()
        failed = False
        with _tracer.start_as_current_span("accrual.reconciliation_pass") as span:
            try:
                session = await self._ensure_session()
                async with session as db:
                    store = OrderLedgerStore(db)
                    try:
                        numbers = await store.list_live_order_numbers()
                        # Release the read transaction before the network calls.
                        await db.commit()
                    except SQLAlchemyError as exc:
                        await db.rollback()
                        summary.store_failed = True
                        self._metrics.record_error(str(exc))
                        logger.warning("Failed to load live orders", error=str(exc))
                        return summary

                    span.set_attribute("accrual.live_orders", len(numbers))
                    for number in numbers:
                        await self._reconcile_order(store, number, summary)
            except Exception:
                failed = True
                raise
            finally:
                self._metrics.record_pass_finished(started, failed=failed or summary.store_failed)
                span.set_attribute("accrual.queried", summary.queried)
                span.set_attribute("accrual.finalized", summary.finalized)

        logger.info(
            "Accrual reconciliation pass completed",
            queried=summary.queried,
            finalized=summary.finalized,
            pending=summary.pending,
            faults=summary.faults,
        )
        return summary

    async def _reconcile_order(
        self,
        store: OrderLedgerStore,
        number: str,
        summary: ReconciliationPassSummary,
    ) -> None:
        """Query and apply one order; a failure here counts as a fault and the pass moves on."""

        try:
            result = await self._client.query(number)
            summary.queried += 1
            self._metrics.record_verdict(type(result).__name__)
            await self._apply(store, result, summary)
        except Exception as exc:
            summary.faults += 1
            self._metrics.record_error(str(exc) or exc.__class__.__name__)
            logger.exception("Failed to reconcile order", order=number, error=str(exc))
            await store.session.rollback()

    async def _apply(
        self,
        store: OrderLedgerStore,
        result: AccrualResult,
        summary: ReconciliationPassSummary,
    ) -> None:
        if isinstance(result, AccrualFinal):
            if await self._write_verdict(store, result.order, result.status, result.accrual, summary):
                summary.finalized += 1
                self._metrics.orders_finalized += 1
                logger.info(
                    "Order accrual finalized",
                    order=result.order,
                    status=result.status.value,
                    accrual=str(result.accrual) if result.accrual is not None else None,
                )
        elif isinstance(result, AccrualPending):
            summary.pending += 1
            await self._write_verdict(store, result.order, OrderStatusEnum.PROCESSING, None, summary)
        elif isinstance(result, AccrualRateLimited):
            summary.faults += 1
            if result.retry_after is not None:
                summary.retry_after = max(summary.retry_after or 0.0, result.retry_after)
            logger.warning("Accrual system rate limited", order=result.order, retry_after=result.retry_after)
        elif isinstance(result, AccrualServerFault):
            summary.faults += 1
            logger.warning("Accrual system server fault", order=result.order, status_code=result.status_code)
        elif isinstance(result, AccrualTransportError):
            summary.faults += 1
            logger.warning("Accrual query failed", order=result.order, reason=result.reason)
        else:
            raise TypeError(f"Unhandled accrual result {result!r}")

    async def _write_verdict(
        self,
        store: OrderLedgerStore,
        order: str,
        status: OrderStatusEnum,
        accrual: Decimal | None,
        summary: ReconciliationPassSummary,
    ) -> bool:
        try:
            return await store.apply_verdict(order, status, accrual)
        except SQLAlchemyError as exc:
            await store.session.rollback()
            summary.store_failed = True
            self._metrics.record_error(str(exc))
            logger.warning("Failed to store accrual verdict", order=order, status=status.value, error=str(exc))
            return False

    async def _run_loop(self) -> None:
        while True:
            await self._pending.wait()
            if self._stopping:
                break
            self._pending.clear()
            try:
                summary = await self.run_once()
            except Exception as exc:
                self._metrics.record_error(str(exc))
                logger.exception("Accrual reconciliation pass failed", error=str(exc))
                summary = ReconciliationPassSummary(store_failed=True)
            if self._stopping:
                break
            try:
                self._schedule_follow_up(summary)
            except Exception as exc:
                self._metrics.record_error(str(exc))
                logger.exception("Failed to schedule follow-up accrual pass", error=str(exc))
                self._cancel_retry()
                if self._loop is not None:
                    self._retry_handle = self._loop.call_later(self.backoff_max_seconds, self.signal)

    def _schedule_follow_up(self, summary: ReconciliationPassSummary) -> None:
        if summary.faulty:
            self._metrics.consecutive_faulty_passes += 1
            delay = self.backoff_delay(self._metrics.consecutive_faulty_passes)
            if summary.retry_after is not None:
                delay = min(max(summary.retry_after, delay), self.backoff_max_seconds)
        elif summary.pending:
            self._metrics.consecutive_faulty_passes = 0
            delay = self.pending_recheck_seconds
        else:
            self._metrics.consecutive_faulty_passes = 0
            return
        self._metrics.last_backoff_seconds = delay
        logger.debug("Scheduling follow-up accrual pass", delay_seconds=delay, faulty=summary.faulty)
        self._cancel_retry()
        if self._loop is not None:
            self._retry_handle = self._loop.call_later(delay, self.signal)

    def backoff_delay(self, attempt: int) -> float:
        """Exponential delay for the ``attempt``-th consecutive faulty pass."""

        exponent = min(max(attempt - 1, 0), _MAX_BACKOFF_EXPONENT)
        return min(self.backoff_base_seconds * (2 ** exponent), self.backoff_max_seconds)

    def _mark_pending(self) -> None:
        self._metrics.signals_received += 1
        self._pending.set()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = ["AccrualReconciliationWorker", "ReconciliationPassSummary"]
