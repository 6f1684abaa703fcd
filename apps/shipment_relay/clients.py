"""
HTTP client for the OrderDesk order management API.

Provides the two calls the dispatcher needs:
- resolve a shipment's source ID to an OrderDesk order ID
- submit a batch of shipments for one store

Every request is scoped to a single store through the ORDERDESK-STORE-ID and
ORDERDESK-API-KEY headers.
"""

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from apps.shipment_relay.accounts import Account
from apps.shipment_relay.exceptions import OrderNotFoundError, UpstreamError
from apps.shipment_relay.schemas import ResolvedShipment

logger = logging.getLogger(__name__)


class OrderGateway(Protocol):
    """Operations the dispatcher needs from the order management API."""

    async def resolve_order(self, account: Account, external_reference: str) -> str: ...

    async def submit_shipments(
        self, account: Account, shipments: Sequence[ResolvedShipment]
    ) -> Any: ...


def _error_message(payload: Any, default: str) -> str:
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return default


class OrderDeskClient:
    """
    HTTP client for OrderDesk API v2.

    Example:
        >>> client = OrderDeskClient("https://app.orderdesk.me/api/v2")
        >>> order_id = await client.resolve_order(account, "21633-100")
        >>> response = await client.submit_shipments(account, [shipment])
        >>> await client.close()
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        """
        Initialize OrderDesk client.

        Args:
            base_url: API base URL (e.g., "https://app.orderdesk.me/api/v2")
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    @staticmethod
    def _headers(account: Account) -> dict[str, str]:
        return {
            "ORDERDESK-STORE-ID": account.account_id,
            "ORDERDESK-API-KEY": account.credential or "",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                f"Malformed response from OrderDesk (HTTP {response.status_code})",
                status_code=response.status_code,
                payload=response.text,
            ) from None

    # Connection failures only; the request never reached OrderDesk
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(httpx.ConnectError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_orders(self, account: Account, external_reference: str) -> httpx.Response:
        return await self.client.get(
            f"{self.base_url}/orders",
            params={"source_id": external_reference},
            headers=self._headers(account),
        )

    async def resolve_order(self, account: Account, external_reference: str) -> str:
        """
        Look up the OrderDesk order ID for a source ID.

        Args:
            account: Store the order belongs to
            external_reference: Source ID (e.g., "21633-100")

        Returns:
            OrderDesk order ID of the first matching order

        Raises:
            OrderNotFoundError: If OrderDesk returns no matching orders
            UpstreamError: On transport failure, non-success status or malformed body
        """
        try:
            response = await self._get_orders(account, external_reference)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Order lookup failed: {e}") from e

        data = self._decode(response)

        logger.debug(
            f"Order lookup response for source_id {external_reference}",
            extra={"store_id": account.account_id, "status_code": response.status_code},
        )

        if not response.is_success:
            logger.error(
                f"OrderDesk order lookup returned error: {response.status_code}",
                extra={"store_id": account.account_id, "source_id": external_reference},
            )
            raise UpstreamError(
                f"Failed to fetch order details: {_error_message(data, 'Unknown error')}",
                status_code=response.status_code,
                payload=data,
            )

        if not isinstance(data, dict):
            raise UpstreamError(
                "Failed to fetch order details: unexpected response shape",
                status_code=response.status_code,
                payload=data,
            )

        orders = data.get("orders") or []
        if not orders:
            raise OrderNotFoundError(account.account_id, external_reference)

        first = orders[0]
        if not isinstance(first, dict) or first.get("id") is None:
            raise UpstreamError(
                "Failed to fetch order details: order has no id",
                status_code=response.status_code,
                payload=data,
            )

        order_id = str(first["id"])
        logger.info(
            f"Resolved source_id {external_reference} to order {order_id}",
            extra={"store_id": account.account_id, "order_id": order_id},
        )
        return order_id

    async def submit_shipments(
        self, account: Account, shipments: Sequence[ResolvedShipment]
    ) -> Any:
        """
        Submit a batch of shipments for one store.

        The whole batch is a single request and is never retried.

        Args:
            account: Store the shipments belong to
            shipments: Resolved shipment records

        Returns:
            Decoded OrderDesk response, unmodified

        Raises:
            UpstreamError: On transport failure, non-success status or malformed body
        """
        payload = [s.model_dump(mode="json", exclude_none=True) for s in shipments]

        logger.info(
            f"Submitting {len(payload)} shipments for store {account.account_id}",
            extra={"store_id": account.account_id, "num_shipments": len(payload)},
        )

        try:
            response = await self.client.post(
                f"{self.base_url}/batch-shipments",
                json=payload,
                headers=self._headers(account),
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Batch shipment request failed: {e}") from e

        data = self._decode(response)

        if not response.is_success:
            logger.error(
                f"OrderDesk batch-shipments returned error: {response.status_code}",
                extra={"store_id": account.account_id, "response": data},
            )
            raise UpstreamError(
                _error_message(data, "Failed to post shipments"),
                status_code=response.status_code,
                payload=data,
            )

        return data
