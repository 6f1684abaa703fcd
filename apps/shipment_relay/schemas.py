"""
Pydantic schemas for the Shipment Relay Service.

Defines:
- Shipment events accepted at ingress
- Resolved shipment records submitted to OrderDesk
- Dispatch cycle outcomes
- HTTP response models
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from apps.shipment_relay.exceptions import InvalidPayloadError

# ==============================================================================
# Shipment Models
# ==============================================================================


class ShipmentEvent(BaseModel):
    """
    Shipment notification received at ingress.

    The external reference travels on the wire as ``source_id`` and encodes
    the store ID and the order token, e.g. ``"21633-100"``.
    """

    # Webhooks may send numeric tracking numbers or source IDs
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    external_reference: str = Field(..., alias="source_id", min_length=1)
    tracking_number: str
    carrier_code: str | None = None
    shipment_method: str | None = None


class ResolvedShipment(BaseModel):
    """Shipment record in the shape OrderDesk's batch-shipments endpoint expects."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    tracking_number: str
    carrier_code: str | None = None
    shipment_method: str | None = None

    @classmethod
    def from_event(cls, event: ShipmentEvent, order_id: str) -> "ResolvedShipment":
        return cls(
            order_id=order_id,
            tracking_number=event.tracking_number,
            carrier_code=event.carrier_code,
            shipment_method=event.shipment_method,
        )


# ==============================================================================
# Dispatch Result Models
# ==============================================================================


class FailureKind(str, Enum):
    """Why an item or batch was dropped from a dispatch cycle."""

    INVALID_ACCOUNT = "invalid_account"
    MISSING_CREDENTIAL = "missing_credential"
    RESOLUTION_FAILURE = "resolution_failure"
    SUBMISSION_FAILURE = "submission_failure"


class OutcomeScope(str, Enum):
    ITEM = "item"
    BATCH = "batch"


class DispatchOutcome(BaseModel):
    """Outcome of resolving one shipment or submitting one store batch."""

    scope: OutcomeScope
    success: bool
    account_id: str | None = None
    external_reference: str | None = None
    order_id: str | None = None
    shipment_count: int | None = None
    failure_kind: FailureKind | None = None
    reason: str | None = None
    response: Any = None


class CycleResult(BaseModel):
    """All outcomes recorded by one dispatch cycle, in the order they happened."""

    cycle_id: UUID
    started_at: datetime
    completed_at: datetime | None = None
    num_drained: int
    outcomes: list[DispatchOutcome] = Field(default_factory=list)

    @property
    def failures(self) -> list[DispatchOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def submitted_batches(self) -> list[DispatchOutcome]:
        return [o for o in self.outcomes if o.scope is OutcomeScope.BATCH and o.success]

    def failures_of(self, kind: FailureKind) -> list[DispatchOutcome]:
        return [o for o in self.outcomes if o.failure_kind is kind]


# ==============================================================================
# HTTP Response Models
# ==============================================================================


class EnqueueResponse(BaseModel):
    """Acknowledgement returned once shipments are queued (not yet processed)."""

    message: str
    queued: int
    queue_depth: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    queue_depth: int
    scheduler_running: bool
    configured_accounts: int
    accounts_missing_credentials: int
    last_cycle_at: datetime | None = None
    timestamp: datetime


class DispatchRunResponse(BaseModel):
    """Response from a manually triggered dispatch cycle."""

    status: str  # completed, empty, skipped
    result: CycleResult | None = None


# ==============================================================================
# Ingress Payload Normalization
# ==============================================================================

_shipment_list_adapter = TypeAdapter(list[ShipmentEvent])


def parse_shipment_payload(body: Any) -> list[ShipmentEvent]:
    """
    Normalize an ingress body to a list of shipment events.

    Accepts a single shipment object or an array of them.

    Raises:
        InvalidPayloadError: If the body has any other shape or an item fails validation
    """
    if isinstance(body, dict):
        items: list[Any] = [body]
    elif isinstance(body, list):
        items = body
    else:
        raise InvalidPayloadError("Payload must be a shipment object or an array of shipments")

    try:
        return _shipment_list_adapter.validate_python(items)
    except ValidationError as e:
        raise InvalidPayloadError(
            f"{e.error_count()} validation errors in shipment payload",
            errors=e.errors(include_url=False, include_context=False),
        ) from None
