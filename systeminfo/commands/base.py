"""Base classes for the diagnostic command framework.

Commands are classes that extend SystemInfoCommand. Each one is built
from the catalogue with a shared CommandContext, then published to a
CommandMap under the plugin namespace.

Key classes:
    CommandContext: Dependency container shared by all commands.
    SystemInfoCommand: ABC that every diagnostic command implements.
    CommandMap: Host-side dispatch table mapping labels to commands.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

if TYPE_CHECKING:
    from ..config import Config

logger = structlog.get_logger("systeminfo.commands")


@dataclass(frozen=True)
class CommandContext:
    """Dependency container for commands.

    Gives commands typed access to the host capabilities they need
    (messaging, permission checks, logging, settings) without any
    global state.
    """

    config: "Config"
    send_message: Callable[[str, str], Awaitable[None]]
    has_permission: Callable[[str, str], bool]
    logger: Any = field(
        default_factory=lambda: structlog.get_logger("systeminfo.commands"),
        repr=False,
    )


class SystemInfoCommand(ABC):
    """Abstract base class for diagnostic commands.

    Subclasses set the class attributes and implement execute().
    The constructor takes the shared CommandContext as its sole
    argument, which is what the catalogue factories call.

    Args:
        ctx: Shared CommandContext dependency container.
    """

    name: str = ""
    description: str = ""
    usage: str = "/<command>"
    aliases: Tuple[str, ...] = ()
    permission: str = ""

    def __init__(self, ctx: CommandContext):
        self.ctx = ctx

    @abstractmethod
    async def execute(self, requester: str, label: str, args: List[str]) -> bool:
        """Run the command.

        Args:
            requester: Name of the invoking principal.
            label: The command name as typed by the requester.
            args: Arguments after the label.

        Returns:
            True if the command handled the invocation, False otherwise.
        """
        ...

    def test_permission(self, requester: str) -> bool:
        """Whether the requester may run this command."""
        if not self.permission:
            return True
        return self.ctx.has_permission(requester, self.permission)

    async def reply(self, requester: str, *lines: str) -> None:
        """Send each line as a separate message to the requester."""
        for line in lines:
            await self.ctx.send_message(requester, line)

    async def close(self) -> None:
        """Release background resources. Called once on host shutdown."""

    def get_help_line(self) -> str:
        """Return a one-line usage summary for /help output."""
        return f"{self.usage.replace('<command>', self.name)} - {self.description}"


class CommandMap:
    """Maps command labels to command instances.

    Each command registered under a namespace is reachable by its name,
    its aliases, and ``namespace:name``. Labels that are already taken
    keep their first owner.
    """

    def __init__(self):
        self._commands: Dict[str, SystemInfoCommand] = {}

    def register(self, namespace: str, command: SystemInfoCommand) -> bool:
        """Register one command under a namespace.

        Returns:
            True if the plain name label was registered, False if it
            was already taken (the namespaced label may still be).
        """
        namespace = namespace.lower().strip()
        name = command.name.lower()
        self._register_label(f"{namespace}:{name}", command)
        for alias in command.aliases:
            self._register_label(alias.lower(), command)
        return self._register_label(name, command)

    def _register_label(self, label: str, command: SystemInfoCommand) -> bool:
        existing = self._commands.get(label)
        if existing is not None and existing is not command:
            logger.warning(
                "command_label_conflict",
                label=label,
                command=type(command).__name__,
                owner=type(existing).__name__,
            )
            return False
        self._commands[label] = command
        return True

    def register_all(self, namespace: str, commands: Iterable[SystemInfoCommand]) -> None:
        """Register every command under the same namespace."""
        count = 0
        for command in commands:
            self.register(namespace, command)
            count += 1
        logger.info("commands_registered", namespace=namespace, count=count)

    def get(self, label: str) -> Optional[SystemInfoCommand]:
        """Look up a command by label (case-insensitive)."""
        return self._commands.get(label.lower())

    @property
    def labels(self) -> frozenset:
        """All registered labels."""
        return frozenset(self._commands.keys())

    @property
    def commands(self) -> List[SystemInfoCommand]:
        """Distinct registered commands, in registration order."""
        seen: List[SystemInfoCommand] = []
        for command in self._commands.values():
            if not any(command is s for s in seen):
                seen.append(command)
        return seen
