"""
Shipment Relay Service - FastAPI Application

Accepts shipment notifications, queues them in memory and relays them to
OrderDesk in per-store batches from a background dispatch loop.

Key Features:
- POST / - Queue one shipment or an array of shipments (202, processed asynchronously)
- GET /health - Health check with queue depth and dispatcher state
- GET /api/v1/dispatch/stats - Dispatcher statistics
- GET /api/v1/dispatch/last - Result of the most recent dispatch cycle
- POST /api/v1/dispatch/run - Run a dispatch cycle now
- GET /metrics - Prometheus metrics

Environment Variables:
    ORDERDESK_BASE_URL: OrderDesk API base URL (default: https://app.orderdesk.me/api/v2)
    DISPATCH_INTERVAL_MS: Delay between dispatch cycles (default: 5000)
    RESOLVE_CONCURRENCY: Max order lookups in flight (default: 10)
    STORE_<store_id>: OrderDesk API key for each store
    LOG_LEVEL: Logging level (default: INFO)

Usage:
    uvicorn apps.shipment_relay.main:app --host 0.0.0.0 --port 4000
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from apps.shipment_relay import __version__
from apps.shipment_relay.accounts import AccountDirectory, load_account_directory
from apps.shipment_relay.clients import OrderDeskClient
from apps.shipment_relay.config import settings
from apps.shipment_relay.dispatcher import ShipmentDispatcher
from apps.shipment_relay.exceptions import InvalidPayloadError
from apps.shipment_relay.metrics import queue_depth, shipments_enqueued_total
from apps.shipment_relay.schemas import (
    CycleResult,
    DispatchRunResponse,
    EnqueueResponse,
    HealthResponse,
    parse_shipment_payload,
)
from apps.shipment_relay.shipment_queue import ShipmentQueue
from libs.common.logging import TRACE_ID_HEADER, add_trace_id_middleware, configure_logging

logger = logging.getLogger(__name__)

# Global in-memory queue (volatile; lost on restart)
shipment_queue = ShipmentQueue()

# Initialized in lifespan
directory: AccountDirectory | None = None
gateway_client: OrderDeskClient | None = None
dispatcher: ShipmentDispatcher | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for the dispatch loop.

    Starts the dispatcher on startup; on shutdown stops it, optionally
    dispatches whatever is still queued, and closes the OrderDesk client.
    """
    global directory, gateway_client, dispatcher

    configure_logging(service_name=settings.service_name, log_level=settings.log_level)
    logger.info(f"Starting Shipment Relay Service (version={__version__})")

    directory = load_account_directory(dotenv_path=settings.dotenv_path)
    gateway_client = OrderDeskClient(
        settings.orderdesk_base_url, timeout=settings.request_timeout_seconds
    )
    dispatcher = ShipmentDispatcher(
        queue=shipment_queue,
        directory=directory,
        gateway=gateway_client,
        concurrency_limit=settings.resolve_concurrency,
        call_timeout=settings.call_timeout_seconds,
        interval_seconds=settings.dispatch_interval_ms / 1000,
    )
    dispatcher.start()

    logger.info(
        f"Dispatching every {settings.dispatch_interval_ms}ms "
        f"with {settings.resolve_concurrency} concurrent lookups"
    )

    try:
        yield
    finally:
        logger.info("Shutting down Shipment Relay Service...")
        try:
            await dispatcher.shutdown(drain=settings.drain_on_shutdown)
        except Exception as e:
            logger.error(f"Error during final dispatch: {e}", exc_info=True)

        remaining = len(shipment_queue)
        if remaining:
            logger.warning(f"{remaining} queued shipments discarded at shutdown")

        await gateway_client.close()


app = FastAPI(
    title="Shipment Relay Service",
    description="Relays shipment tracking notifications to OrderDesk in per-store batches",
    version=__version__,
    lifespan=lifespan,
)

add_trace_id_middleware(app)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


# ============================================================================
# Exception Handlers
# ============================================================================


@app.exception_handler(InvalidPayloadError)
async def invalid_payload_handler(request: Request, exc: InvalidPayloadError) -> JSONResponse:
    """Reject malformed ingress bodies before they reach the queue."""
    logger.error(f"Invalid request payload: {exc}")
    content: dict[str, Any] = {"message": "Invalid request payload", "detail": str(exc)}
    if exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unexpected errors."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    trace_id = getattr(request.state, "trace_id", None)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error", "error": str(exc)},
        headers={TRACE_ID_HEADER: trace_id} if trace_id else None,
    )


# ============================================================================
# Ingress
# ============================================================================


@app.post(
    "/",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Ingress"],
)
async def receive_shipments(request: Request) -> EnqueueResponse:
    """
    Queue shipments for asynchronous processing.

    Accepts a single shipment object or an array of them. Shipments are
    resolved and posted to OrderDesk by a later dispatch cycle; a 202 only
    means they were queued.

    Raises:
        InvalidPayloadError: Body is not JSON, or not a shipment object / array (400)

    Examples:
        >>> import requests
        >>> requests.post("http://localhost:4000/", json={
        ...     "source_id": "21633-100",
        ...     "tracking_number": "1Z999AA10123456784",
        ...     "carrier_code": "UPS",
        ...     "shipment_method": "Ground",
        ... }).status_code
        202
    """
    try:
        body = await request.json()
    except ValueError:
        raise InvalidPayloadError("Request body is not valid JSON") from None

    events = parse_shipment_payload(body)
    depth = shipment_queue.enqueue(events)

    shipments_enqueued_total.inc(len(events))
    queue_depth.set(depth)

    return EnqueueResponse(
        message="Shipments queued for processing",
        queued=len(events),
        queue_depth=depth,
    )


# ============================================================================
# Health & Dispatch
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Status is "healthy" while the dispatch loop runs, "degraded" if it has
    stopped, and "unhealthy" before the service has started.
    """
    if dispatcher is None:
        overall_status = "unhealthy"
    elif dispatcher.running:
        overall_status = "healthy"
    else:
        overall_status = "degraded"

    last = dispatcher.last_result if dispatcher else None

    return HealthResponse(
        status=overall_status,
        service=settings.service_name,
        version=__version__,
        queue_depth=len(shipment_queue),
        scheduler_running=bool(dispatcher and dispatcher.running),
        configured_accounts=len(directory) if directory else 0,
        accounts_missing_credentials=len(directory.missing_credentials()) if directory else 0,
        last_cycle_at=last.completed_at if last else None,
        timestamp=datetime.now(UTC),
    )


def _require_dispatcher() -> ShipmentDispatcher:
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dispatcher not initialized",
        )
    return dispatcher


@app.get("/api/v1/dispatch/stats", tags=["Dispatch"])
async def get_dispatch_stats() -> dict[str, Any]:
    """Get dispatcher statistics (loop state, limits, last cycle)."""
    return _require_dispatcher().get_stats()


@app.get("/api/v1/dispatch/last", response_model=CycleResult, tags=["Dispatch"])
async def get_last_cycle() -> CycleResult:
    """
    Get the result of the most recent non-empty dispatch cycle.

    Raises:
        HTTPException 404: No cycle has processed shipments yet
    """
    result = _require_dispatcher().last_result
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No dispatch cycle has run yet",
        )
    return result


@app.post("/api/v1/dispatch/run", response_model=DispatchRunResponse, tags=["Dispatch"])
async def run_dispatch_cycle() -> DispatchRunResponse:
    """
    Run a dispatch cycle immediately.

    Skipped if a cycle is already running; "empty" if nothing was queued.
    """
    active = _require_dispatcher()
    busy = active.cycle_in_progress

    result = await active.trigger()
    if busy:
        return DispatchRunResponse(status="skipped")
    if result is None:
        return DispatchRunResponse(status="empty")
    return DispatchRunResponse(status="completed", result=result)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "apps.shipment_relay.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
