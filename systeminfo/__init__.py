"""SystemInfo -- diagnostic commands for a server host."""

__version__ = "1.0.0"
