"""Utility helpers."""

from hostwatch.utils.formatters import format_bytes, format_percentage, format_temperature
from hostwatch.utils.logging import get_logger, setup_logging

__all__ = [
    "format_bytes",
    "format_percentage",
    "format_temperature",
    "get_logger",
    "setup_logging",
]
