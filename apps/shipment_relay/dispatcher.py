"""
Shipment Dispatcher - periodic drain, resolve and batch-submit.

Each dispatch cycle:
1. Drains the shipment queue (atomic snapshot)
2. Maps every event to its store and resolves its OrderDesk order ID,
   with at most ``concurrency_limit`` lookups in flight
3. Groups resolved shipments by store
4. Submits one batch per store

Failures are scoped to the item or batch they occur in and are recorded in
the CycleResult; nothing is retried or requeued.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from apps.shipment_relay.accounts import Account, AccountDirectory, parse_account_id
from apps.shipment_relay.clients import OrderGateway
from apps.shipment_relay.exceptions import InvalidAccountError
from apps.shipment_relay.metrics import (
    batch_submissions_total,
    dispatch_cycle_duration,
    dispatch_cycles_total,
    queue_depth,
    resolutions_in_flight,
    resolutions_total,
    shipments_submitted_total,
)
from apps.shipment_relay.schemas import (
    CycleResult,
    DispatchOutcome,
    FailureKind,
    OutcomeScope,
    ResolvedShipment,
    ShipmentEvent,
)
from apps.shipment_relay.shipment_queue import ShipmentQueue
from libs.common.logging import LogContext

logger = logging.getLogger(__name__)


@dataclass
class AccountBatch:
    """Resolved shipments for one store within one cycle."""

    account: Account
    shipments: list[ResolvedShipment] = field(default_factory=list)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ShipmentDispatcher:
    """
    Drives dispatch cycles over a ShipmentQueue.

    Cycles never overlap: the background loop waits ``interval_seconds``
    after a cycle finishes before starting the next, and a trigger that
    arrives while a cycle is running is skipped.

    Example:
        dispatcher = ShipmentDispatcher(
            queue=shipment_queue,
            directory=load_account_directory(),
            gateway=OrderDeskClient("https://app.orderdesk.me/api/v2"),
            interval_seconds=5.0,
        )
        dispatcher.start()
        ...
        await dispatcher.shutdown(drain=True)
    """

    def __init__(
        self,
        queue: ShipmentQueue,
        directory: AccountDirectory,
        gateway: OrderGateway,
        concurrency_limit: int = 10,
        call_timeout: float = 30.0,
        interval_seconds: float = 5.0,
    ):
        """
        Initialize the dispatcher.

        Args:
            queue: Queue to drain
            directory: Store account lookup
            gateway: Order API used to resolve and submit
            concurrency_limit: Max order lookups in flight (default: 10)
            call_timeout: Seconds before a single lookup or submission is abandoned
            interval_seconds: Delay between cycles of the background loop
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        self._queue = queue
        self._directory = directory
        self._gateway = gateway
        self.concurrency_limit = concurrency_limit
        self.call_timeout = call_timeout
        self.interval_seconds = interval_seconds

        # Shared by every lookup this dispatcher makes
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._in_flight = 0
        self._cycles_completed = 0

        self.last_result: CycleResult | None = None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def start(self) -> asyncio.Task[None]:
        """Start the background dispatch loop (no-op if already running)."""
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._running = True
            self._task = asyncio.create_task(self.start_dispatch_loop())
        return self._task

    async def start_dispatch_loop(self) -> None:
        """
        Run dispatch cycles until stopped.

        Waits ``interval_seconds`` between cycles. Errors from a cycle are
        logged and the loop continues. Cancellation propagates to the caller.
        """
        logger.info(f"Starting dispatch loop: interval={self.interval_seconds}s")

        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.interval_seconds
                    )
                except TimeoutError:
                    pass

                # stop() may have landed during the wait
                if self._stop_event.is_set():
                    break

                try:
                    await self.trigger()
                except Exception as e:
                    dispatch_cycles_total.labels(status="failed").inc()
                    logger.error(f"Dispatch cycle error: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Dispatch loop cancelled")
            raise
        finally:
            self._running = False
            logger.info("Dispatch loop stopped")

    def stop(self) -> None:
        """Ask the background loop to exit after the current cycle."""
        logger.info("Stopping dispatch loop")
        self._running = False
        self._stop_event.set()

    async def shutdown(self, drain: bool = True) -> CycleResult | None:
        """
        Stop the loop, wait for any running cycle, optionally dispatch what is left.

        Args:
            drain: Run one final cycle for events still in the queue

        Returns:
            Result of the final cycle, or None if none ran
        """
        self.stop()
        if self._task is not None:
            if not self._task.done():
                await self._task
            self._task = None

        if drain and len(self._queue):
            logger.info(f"Dispatching {len(self._queue)} queued shipments before shutdown")
            async with self._cycle_lock:
                return await self.run_cycle()
        return None

    async def trigger(self) -> CycleResult | None:
        """
        Run one cycle unless one is already running.

        Returns:
            CycleResult, or None if skipped or the queue was empty
        """
        if self._cycle_lock.locked():
            logger.info("Dispatch cycle already in progress, skipping trigger")
            dispatch_cycles_total.labels(status="skipped").inc()
            return None

        async with self._cycle_lock:
            return await self.run_cycle()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult | None:
        """
        Drain the queue and dispatch the snapshot.

        Returns:
            CycleResult with one outcome per event plus one per store batch,
            or None if the queue was empty (no downstream calls are made).
        """
        events = self._queue.drain()
        queue_depth.set(len(self._queue))
        if not events:
            return None

        result = CycleResult(
            cycle_id=uuid.uuid4(),
            started_at=datetime.now(UTC),
            num_drained=len(events),
        )

        with LogContext(str(result.cycle_id)):
            logger.info(
                f"Dispatch cycle started: {len(events)} shipments",
                extra={"cycle_id": str(result.cycle_id), "num_drained": len(events)},
            )
            started = time.monotonic()

            batches: dict[str, AccountBatch] = {}
            await asyncio.gather(
                *(self._resolve_event(event, batches, result.outcomes) for event in events)
            )

            for batch in batches.values():
                result.outcomes.append(await self._submit_batch(batch))

            elapsed = time.monotonic() - started
            result.completed_at = datetime.now(UTC)
            dispatch_cycle_duration.observe(elapsed)
            dispatch_cycles_total.labels(status="completed").inc()

            self._cycles_completed += 1
            self.last_result = result

            logger.info(
                f"Dispatch cycle completed: {len(batches)} batches, "
                f"{len(result.failures)} failures",
                extra={
                    "cycle_id": str(result.cycle_id),
                    "num_drained": result.num_drained,
                    "num_batches": len(batches),
                    "num_failures": len(result.failures),
                    "duration_seconds": round(elapsed, 3),
                },
            )

        return result

    async def _resolve_event(
        self,
        event: ShipmentEvent,
        batches: dict[str, AccountBatch],
        outcomes: list[DispatchOutcome],
    ) -> None:
        try:
            await self._process_event(event, batches, outcomes)
        except Exception as e:
            logger.error(
                f"Unexpected error processing source_id {event.external_reference}: {e}",
                exc_info=True,
            )
            self._record_item_failure(
                outcomes, event, FailureKind.RESOLUTION_FAILURE, _describe(e)
            )

    async def _process_event(
        self,
        event: ShipmentEvent,
        batches: dict[str, AccountBatch],
        outcomes: list[DispatchOutcome],
    ) -> None:
        source_id = event.external_reference

        try:
            account_id = parse_account_id(source_id)
            account = self._directory.lookup(account_id)
            if account is None:
                raise InvalidAccountError(account_id)
        except InvalidAccountError as e:
            self._record_item_failure(
                outcomes, event, FailureKind.INVALID_ACCOUNT, str(e), account_id=e.account_id
            )
            return

        if not account.credential:
            self._record_item_failure(
                outcomes,
                event,
                FailureKind.MISSING_CREDENTIAL,
                f"API key not found for store ID: {account_id}",
                account_id=account_id,
            )
            return

        try:
            order_id = await self._resolve_with_limit(account, source_id)
        except TimeoutError:
            self._record_item_failure(
                outcomes,
                event,
                FailureKind.RESOLUTION_FAILURE,
                f"Order lookup timed out after {self.call_timeout}s",
                account_id=account_id,
            )
            return
        except Exception as e:
            self._record_item_failure(
                outcomes, event, FailureKind.RESOLUTION_FAILURE, _describe(e), account_id=account_id
            )
            return

        batch = batches.get(account_id)
        if batch is None:
            batch = batches[account_id] = AccountBatch(account=account)
        batch.shipments.append(ResolvedShipment.from_event(event, order_id))

        resolutions_total.labels(status="success").inc()
        outcomes.append(
            DispatchOutcome(
                scope=OutcomeScope.ITEM,
                success=True,
                account_id=account_id,
                external_reference=source_id,
                order_id=order_id,
            )
        )

    async def _resolve_with_limit(self, account: Account, external_reference: str) -> str:
        async with self._semaphore:
            self._in_flight += 1
            resolutions_in_flight.inc()
            try:
                return await asyncio.wait_for(
                    self._gateway.resolve_order(account, external_reference),
                    timeout=self.call_timeout,
                )
            finally:
                self._in_flight -= 1
                resolutions_in_flight.dec()

    async def _submit_batch(self, batch: AccountBatch) -> DispatchOutcome:
        account_id = batch.account.account_id
        count = len(batch.shipments)
        try:
            response = await asyncio.wait_for(
                self._gateway.submit_shipments(batch.account, batch.shipments),
                timeout=self.call_timeout,
            )
        except Exception as e:
            reason = (
                f"Batch submission timed out after {self.call_timeout}s"
                if isinstance(e, TimeoutError)
                else _describe(e)
            )
            batch_submissions_total.labels(status="error").inc()
            logger.error(
                f"Failed to post shipments for store {account_id}: {reason}",
                extra={"store_id": account_id, "num_shipments": count},
            )
            return DispatchOutcome(
                scope=OutcomeScope.BATCH,
                success=False,
                account_id=account_id,
                shipment_count=count,
                failure_kind=FailureKind.SUBMISSION_FAILURE,
                reason=reason,
                response=getattr(e, "payload", None),
            )

        batch_submissions_total.labels(status="success").inc()
        shipments_submitted_total.inc(count)
        logger.info(
            f"Posted {count} shipments for store {account_id}",
            extra={"store_id": account_id, "num_shipments": count},
        )
        return DispatchOutcome(
            scope=OutcomeScope.BATCH,
            success=True,
            account_id=account_id,
            shipment_count=count,
            response=response,
        )

    def _record_item_failure(
        self,
        outcomes: list[DispatchOutcome],
        event: ShipmentEvent,
        kind: FailureKind,
        reason: str,
        account_id: str | None = None,
    ) -> None:
        resolutions_total.labels(status=kind.value).inc()
        logger.error(
            f"Shipment with source_id {event.external_reference} dropped: {reason}",
            extra={
                "source_id": event.external_reference,
                "store_id": account_id,
                "failure_kind": kind.value,
            },
        )
        outcomes.append(
            DispatchOutcome(
                scope=OutcomeScope.ITEM,
                success=False,
                account_id=account_id,
                external_reference=event.external_reference,
                failure_kind=kind,
                reason=reason,
            )
        )

    def get_stats(self) -> dict[str, Any]:
        """
        Get dispatcher statistics.

        Returns:
            Dictionary with loop state, limits and last cycle summary
        """
        last = self.last_result
        return {
            "running": self._running,
            "cycle_in_progress": self.cycle_in_progress,
            "interval_seconds": self.interval_seconds,
            "concurrency_limit": self.concurrency_limit,
            "resolutions_in_flight": self._in_flight,
            "cycles_completed": self._cycles_completed,
            "queue_depth": len(self._queue),
            "last_cycle_id": str(last.cycle_id) if last else None,
            "last_cycle_completed_at": last.completed_at.isoformat()
            if last and last.completed_at
            else None,
        }
