"""
Apps package - FastAPI services.

This package contains:
- shipment_relay: Queues shipment notifications and relays them to OrderDesk
"""
