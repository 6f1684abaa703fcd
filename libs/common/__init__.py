"""Common utilities and exceptions."""

from libs.common.exceptions import ConfigurationError, ShipmentRelayError

__all__ = [
    "ConfigurationError",
    "ShipmentRelayError",
]
