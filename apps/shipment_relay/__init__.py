"""
Shipment Relay Service.

Relays shipment tracking notifications to OrderDesk:
1. Accept shipment events over HTTP and buffer them in memory
2. Periodically drain the buffer
3. Resolve each event's source ID to an OrderDesk order (bounded concurrency)
4. Submit resolved shipments as one batch per store

Architecture:
    Carrier webhook → POST / → ShipmentQueue
                                   ↓ (every 5s)
                      ShipmentDispatcher → OrderDesk API

Usage:
    uvicorn apps.shipment_relay.main:app --port 4000
"""

__version__ = "0.1.0"
