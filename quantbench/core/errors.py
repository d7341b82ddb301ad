"""
Exception types shared across the platform.
"""

from typing import Optional


class QuantbenchError(Exception):
    """Base class for platform errors."""


class ConfigurationError(QuantbenchError):
    """Raised when a strategy or runtime configuration is missing or invalid."""


class DataLoadError(QuantbenchError):
    """Raised when historical candles cannot be loaded."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []
