"""
Pytest fixtures for Shipment Relay tests.

Provides an in-memory order gateway that records calls and tracks how many
lookups are in flight at once, plus a small account directory.
"""

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from apps.shipment_relay.accounts import Account, AccountDirectory
from apps.shipment_relay.exceptions import OrderNotFoundError, UpstreamError
from apps.shipment_relay.schemas import ResolvedShipment, ShipmentEvent
from apps.shipment_relay.shipment_queue import ShipmentQueue


class FakeOrderGateway:
    """OrderGateway double.

    Resolves ``<store>-<token>`` to ``order-<token>`` unless the source ID is
    listed in ``missing`` (OrderNotFoundError) or ``broken`` (UpstreamError).
    Submissions for stores in ``reject_stores`` fail with UpstreamError.
    """

    def __init__(self, resolve_delay: float = 0.0):
        self.resolve_delay = resolve_delay
        self.missing: set[str] = set()
        self.broken: set[str] = set()
        self.reject_stores: set[str] = set()
        self.resolve_calls: list[tuple[str, str]] = []
        self.submit_calls: list[tuple[str, list[ResolvedShipment]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def resolve_order(self, account: Account, external_reference: str) -> str:
        self.resolve_calls.append((account.account_id, external_reference))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.resolve_delay)
            if external_reference in self.missing:
                raise OrderNotFoundError(account.account_id, external_reference)
            if external_reference in self.broken:
                raise UpstreamError("Failed to fetch order details: Unauthorized", status_code=401)
            return "order-" + external_reference.split("-", 1)[1]
        finally:
            self.in_flight -= 1

    async def submit_shipments(
        self, account: Account, shipments: Sequence[ResolvedShipment]
    ) -> Any:
        self.submit_calls.append((account.account_id, list(shipments)))
        if account.account_id in self.reject_stores:
            raise UpstreamError("Invalid tracking number", status_code=422, payload={"status": "error"})
        return {"status": "success", "count": len(shipments)}

    def submitted_for(self, account_id: str) -> list[ResolvedShipment]:
        return [s for store, batch in self.submit_calls if store == account_id for s in batch]


@pytest.fixture()
def make_event() -> Callable[..., ShipmentEvent]:
    """Factory for shipment events with sensible carrier defaults."""

    def _make(source_id: str, tracking_number: str = "1Z999") -> ShipmentEvent:
        return ShipmentEvent(
            source_id=source_id,
            tracking_number=tracking_number,
            carrier_code="UPS",
            shipment_method="Ground",
        )

    return _make


@pytest.fixture()
def account_directory() -> AccountDirectory:
    return AccountDirectory(
        [
            Account("21633", "key-21633", "Amentum Inventory"),
            Account("40348", "key-40348", "Amentum Safety"),
            Account("12803", None, "ASE"),
        ]
    )


@pytest.fixture()
def gateway() -> FakeOrderGateway:
    return FakeOrderGateway()


@pytest.fixture()
def shipment_queue() -> ShipmentQueue:
    return ShipmentQueue()
