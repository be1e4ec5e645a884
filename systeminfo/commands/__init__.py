"""Diagnostic command framework for SystemInfo.

Provides the SystemInfoCommand ABC, the CommandContext dependency
container, and the CommandMap dispatch table. The catalogue and the
CommandManager that builds commands from it live in
``systeminfo.commands.catalogue`` and ``systeminfo.commands.registry``.
"""

from .base import CommandContext, CommandMap, SystemInfoCommand

__all__ = [
    "CommandContext",
    "CommandMap",
    "SystemInfoCommand",
]
