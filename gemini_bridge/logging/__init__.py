"""Logging module for the gateway."""

from .masking import mask_secret, safe_headers, safe_url
from .setup import LOGGER_NAME, setup_logging

__all__ = [
    "LOGGER_NAME",
    "mask_secret",
    "safe_headers",
    "safe_url",
    "setup_logging",
]
