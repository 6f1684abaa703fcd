"""Prometheus metrics definitions for the Shipment Relay Service.

Usage:
    from apps.shipment_relay.metrics import shipments_enqueued_total, queue_depth

    shipments_enqueued_total.inc(3)
    queue_depth.set(len(shipment_queue))
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Queue Metrics
# ============================================================================

shipments_enqueued_total = Counter(
    "shipment_relay_shipments_enqueued_total",
    "Total number of shipment events accepted at ingress",
)

queue_depth = Gauge(
    "shipment_relay_queue_depth",
    "Number of shipment events waiting for the next dispatch cycle",
)

# ============================================================================
# Dispatch Metrics
# ============================================================================

dispatch_cycles_total = Counter(
    "shipment_relay_dispatch_cycles_total",
    "Total number of dispatch cycles",
    ["status"],  # completed, skipped, failed
)

dispatch_cycle_duration = Histogram(
    "shipment_relay_dispatch_cycle_duration_seconds",
    "Time taken to resolve and submit one drained snapshot",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

resolutions_total = Counter(
    "shipment_relay_resolutions_total",
    "Total number of shipment events processed in the resolution phase",
    ["status"],  # success, invalid_account, missing_credential, resolution_failure
)

resolutions_in_flight = Gauge(
    "shipment_relay_resolutions_in_flight",
    "Order lookups currently in flight",
)

batch_submissions_total = Counter(
    "shipment_relay_batch_submissions_total",
    "Total number of per-store batch submissions",
    ["status"],  # success, error
)

shipments_submitted_total = Counter(
    "shipment_relay_shipments_submitted_total",
    "Total number of shipments in successfully submitted batches",
)
