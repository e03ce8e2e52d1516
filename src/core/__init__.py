"""
Core Module - Shared error taxonomy and time sources.

Components:
- exceptions: CadenceError, InvalidInput, NotFound, InvalidState
- clock: Clock protocol, SystemClock, FixedClock
"""

from src.core.clock import Clock, FixedClock, SystemClock
from src.core.exceptions import CadenceError, InvalidInput, InvalidState, NotFound

__all__ = [
    "CadenceError",
    "InvalidInput",
    "InvalidState",
    "NotFound",
    "Clock",
    "FixedClock",
    "SystemClock",
]
