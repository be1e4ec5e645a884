"""Builds diagnostic commands from the catalogue and publishes them.

Each catalogue entry is constructed in isolation: a factory that
raises (or returns something that is not a command) is logged and
skipped, and the remaining entries are still built.
"""

from typing import Dict, List, Mapping, Optional, Tuple

import structlog

from ..exceptions import CommandConstructionError
from .base import CommandContext, CommandMap, SystemInfoCommand
from .catalogue import CATALOGUE, CommandDescriptor, CommandType

logger = structlog.get_logger("systeminfo.commands")

DEFAULT_NAMESPACE = "systeminfo"


class CommandManager:
    """Creates and registers the diagnostic commands.

    Instances are created once at startup (single-threaded, before any
    dispatch) and are read-only afterwards.

    Args:
        ctx: Shared CommandContext passed to every command factory.
        catalogue: Descriptor table to build from. Defaults to the
            built-in CATALOGUE.
        namespace: Prefix used when publishing to the CommandMap.
    """

    def __init__(
        self,
        ctx: CommandContext,
        catalogue: Optional[Mapping[CommandType, CommandDescriptor]] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ):
        self.ctx = ctx
        self.namespace = namespace
        self._catalogue = CATALOGUE if catalogue is None else catalogue
        self._commands: List[SystemInfoCommand] = []
        self._built: Dict[str, SystemInfoCommand] = {}

    def create_instances(self) -> None:
        """Build one command per catalogue descriptor.

        Descriptors that were already built are skipped, so calling
        this twice never duplicates a command.
        """
        for descriptor in self._catalogue.values():
            if descriptor.name in self._built:
                continue
            try:
                command = descriptor.factory(self.ctx)
                if not isinstance(command, SystemInfoCommand):
                    raise CommandConstructionError(
                        f"Factory returned {type(command).__name__}, not a command",
                        display_name=descriptor.display_name,
                    )
            except Exception as e:
                logger.warning(
                    "command_construction_failed",
                    command=descriptor.display_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            self._built[descriptor.name] = command
            self._commands.append(command)
            logger.debug("command_created", command=descriptor.display_name)

        logger.info(
            "command_instances_created",
            created=len(self._commands),
            catalogue=len(self._catalogue),
        )

    def register_all(self, command_map: CommandMap) -> None:
        """Publish every built command to the host dispatch table."""
        command_map.register_all(self.namespace, list(self._commands))

    @property
    def commands(self) -> Tuple[SystemInfoCommand, ...]:
        """Built commands, in catalogue order."""
        return tuple(self._commands)

    def get(self, name: str) -> Optional[SystemInfoCommand]:
        """Look up a built command by its catalogue name."""
        return self._built.get(name)

    async def shutdown(self) -> None:
        """Close all commands (reverse order)."""
        for command in reversed(self._commands):
            try:
                await command.close()
            except Exception as e:
                logger.error(
                    "command_close_failed",
                    command=type(command).__name__,
                    error=str(e),
                )
