"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Timestamp unit conversion (Gate seconds, millisecond text)
"""

from core.utils.time import seconds_to_millis, to_epoch_millis, current_utc_timestamp

__all__ = ["seconds_to_millis", "to_epoch_millis", "current_utc_timestamp"]
