"""Utilities for the voting client."""

from .utils import (
    setup_logging,
    format_duration,
    format_results
)

__all__ = [
    'setup_logging',
    'format_duration',
    'format_results'
]
