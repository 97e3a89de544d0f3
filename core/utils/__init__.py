"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Millisecond-to-second conversion and clock helpers
"""

from core.utils.time import ms_to_seconds, current_utc_timestamp

__all__ = ["ms_to_seconds", "current_utc_timestamp"]
