"""
Host Core Package.

This package contains the shared infrastructure components
that the orchestration engine depends on.

Components:
- exceptions: Structured exception hierarchy
- clock: Unified time abstraction
"""

from .clock import ClockFactory, ClockProtocol, MockClock, SystemClock, now_utc
from .exceptions import ModhostError, Severity, ErrorClassification

__all__ = [
    "ClockFactory",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "now_utc",
    "ModhostError",
    "Severity",
    "ErrorClassification",
]
