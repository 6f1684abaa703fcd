"""
Exception hierarchy for the shipment relay.

This module defines the base exceptions shared across services, organized
in a hierarchy for precise error handling. Service-specific errors (gateway
failures, account resolution) subclass these in their own packages.
"""


class ShipmentRelayError(Exception):
    """
    Base exception for all shipment relay errors.

    All custom exceptions in the relay inherit from this class,
    allowing for catch-all error handling when needed.

    Example:
        >>> try:
        ...     # relay code
        ...     pass
        ... except ShipmentRelayError as e:
        ...     logger.error(f"Relay error: {e}")
    """

    pass


class ConfigurationError(ShipmentRelayError):
    """
    Raised when required configuration or secrets are missing or invalid.

    Example:
        >>> if len(set(ids)) != len(ids):
        ...     raise ConfigurationError("Duplicate account IDs in store table")
    """

    pass
