"""
Shared infrastructure: configuration, logging, errors, retry policy.
"""

from .config import NotifierSettings, get_settings, reset_settings
from .errors import (
    CircuitOpenError,
    DeliveryError,
    FormatError,
    InvalidPayloadError,
    NonRetryableResolutionError,
    NotifierError,
    ResolutionError,
    RetryableResolutionError,
    StoreError,
)
from .logging import get_logger, reset_logging

__all__ = [
    "NotifierSettings",
    "get_settings",
    "reset_settings",
    "get_logger",
    "reset_logging",
    "NotifierError",
    "InvalidPayloadError",
    "ResolutionError",
    "RetryableResolutionError",
    "NonRetryableResolutionError",
    "CircuitOpenError",
    "DeliveryError",
    "FormatError",
    "StoreError",
]
