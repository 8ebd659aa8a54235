"""Utility functions."""

from app.utils.clock import elapsed_now, format_clock, minute_of, utcnow

__all__ = [
    "elapsed_now",
    "format_clock",
    "minute_of",
    "utcnow",
]
