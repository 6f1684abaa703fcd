"""
In-memory shipment queue.

Volatile, unbounded, insertion-ordered buffer between ingress and the
dispatcher. Contents are lost on restart.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from apps.shipment_relay.schemas import ShipmentEvent

logger = logging.getLogger(__name__)


class ShipmentQueue:
    """Thread-safe FIFO buffer of pending shipment events.

    The lock is held only for the append or the snapshot swap, never while
    drained events are being processed, so producers are not blocked by a
    running dispatch cycle.
    """

    def __init__(self) -> None:
        self._items: list[ShipmentEvent] = []
        self._lock = threading.Lock()

    def enqueue(self, events: Iterable[ShipmentEvent]) -> int:
        """Append events in order.

        Returns:
            Queue depth after the append.
        """
        batch = list(events)
        with self._lock:
            self._items.extend(batch)
            depth = len(self._items)
        logger.info(
            f"Queued {len(batch)} shipments",
            extra={"queued": len(batch), "queue_depth": depth},
        )
        return depth

    def drain(self) -> list[ShipmentEvent]:
        """Atomically remove and return everything currently queued.

        Events enqueued after the swap belong to the next drain.
        """
        with self._lock:
            snapshot, self._items = self._items, []
        return snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
