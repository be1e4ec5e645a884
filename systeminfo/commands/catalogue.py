"""Static catalogue of diagnostic commands.

Maps each CommandType to a CommandDescriptor whose factory builds the
command from the shared CommandContext. The registry iterates this
table in definition order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict

from ..speedtest.command import SpeedtestCommand
from .base import CommandContext, SystemInfoCommand
from .memory import MemoryCommand


class CommandType(str, Enum):
    """Identifiers of the built-in diagnostic commands."""
    SPEEDTEST = "speedtest"
    MEMORY = "memory"


CommandFactory = Callable[[CommandContext], SystemInfoCommand]


@dataclass(frozen=True)
class CommandDescriptor:
    """Static metadata for one catalogue entry.

    Attributes:
        command_type: Unique identifier of the command.
        factory: Callable taking the CommandContext and returning
            the command instance (usually the command class itself).
        display_name: Human-readable name used in operator logs.
    """
    command_type: CommandType
    factory: CommandFactory
    display_name: str

    @property
    def name(self) -> str:
        return self.command_type.value


CATALOGUE: Dict[CommandType, CommandDescriptor] = {
    CommandType.SPEEDTEST: CommandDescriptor(
        CommandType.SPEEDTEST, SpeedtestCommand, "Speedtest"
    ),
    CommandType.MEMORY: CommandDescriptor(
        CommandType.MEMORY, MemoryCommand, "Memory"
    ),
}
