"""Network throughput measurement and the /speedtest command."""

from .session import (
    SessionListener,
    SessionResult,
    SessionState,
    SizeClass,
    ThroughputSession,
)

__all__ = [
    "SessionListener",
    "SessionResult",
    "SessionState",
    "SizeClass",
    "ThroughputSession",
]
