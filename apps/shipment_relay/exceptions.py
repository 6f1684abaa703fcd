"""
Exceptions raised by the shipment relay pipeline.

Hierarchy:
    ShipmentRelayError
    ├── InvalidAccountError       source ID does not map to a configured store
    ├── InvalidPayloadError       ingress body rejected before queueing
    └── OrderGatewayError         OrderDesk call failed
        ├── OrderNotFoundError    lookup returned zero orders
        └── UpstreamError         non-success status, transport or format error
"""

from typing import Any

from libs.common.exceptions import ShipmentRelayError


class InvalidAccountError(ShipmentRelayError):
    """Raised when an external reference cannot be mapped to a store ID."""

    def __init__(self, account_id: str, message: str | None = None):
        self.account_id = account_id
        super().__init__(message or f"Invalid store ID: {account_id}")


class OrderGatewayError(ShipmentRelayError):
    """Base class for failures talking to the order management API."""

    pass


class OrderNotFoundError(OrderGatewayError):
    """Raised when no order matches the external reference."""

    def __init__(self, account_id: str, external_reference: str):
        self.account_id = account_id
        self.external_reference = external_reference
        super().__init__(
            f"No order found for source_id {external_reference} in store {account_id}"
        )


class UpstreamError(OrderGatewayError):
    """
    Raised when the order API responds with an error or an unusable body.

    Attributes:
        status_code: HTTP status of the response (None for transport errors)
        payload: Decoded response body, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class InvalidPayloadError(ShipmentRelayError):
    """
    Raised when an ingress body is not a shipment object or array of them.

    Attributes:
        errors: Field-level validation errors, if any
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        self.errors = errors or []
        super().__init__(message)
