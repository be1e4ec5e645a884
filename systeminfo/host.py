"""Console host for the SystemInfo commands.

Implements the capabilities commands consume from their host:
outbound messaging, permission checks and the command dispatch
table. Lines typed on the console run as the ``console`` requester,
which holds every permission.

Key classes:
    ConsoleHost: Owns the CommandMap, the CommandManager and the
        stdin read loop.
"""

import asyncio
import sys
from typing import List, Optional, TextIO

import structlog

from .commands.base import CommandContext, CommandMap
from .commands.registry import CommandManager
from .config import Config
from .formatting import color, strip_markup
from .security import CONSOLE, has_permission

logger = structlog.get_logger("systeminfo.host")


class ConsoleHost:
    """Runs diagnostic commands typed on a console.

    Args:
        config: Loaded Config.
        stream: Where messages are written. Defaults to stdout.
        use_color: Render ``&`` colour codes as ANSI escapes instead
            of stripping them.
    """

    def __init__(
        self,
        config: Config,
        stream: Optional[TextIO] = None,
        use_color: Optional[bool] = None,
    ):
        self.config = config
        self.stream = stream or sys.stdout
        if use_color is None:
            use_color = self.stream.isatty()
        self.use_color = use_color

        self.command_map = CommandMap()
        self.ctx = CommandContext(
            config=config,
            send_message=self.send_message,
            has_permission=self.has_permission,
        )
        self.manager = CommandManager(self.ctx, namespace=config.command_namespace)

    def start(self) -> None:
        """Build the commands and publish them to the dispatch table."""
        self.manager.create_instances()
        self.manager.register_all(self.command_map)

    async def stop(self) -> None:
        """Close all commands, stopping any background work."""
        await self.manager.shutdown()

    def has_permission(self, requester: str, key: str) -> bool:
        return has_permission(requester, key, self.config.permissions)

    async def send_message(self, requester: str, text: str) -> None:
        """Write a message for a requester to the console stream."""
        rendered = color(text) if self.use_color else strip_markup(text)
        if requester != CONSOLE:
            rendered = f"[{requester}] {rendered}"
        self.stream.write(rendered + "\n")
        self.stream.flush()

    def get_help_lines(self) -> List[str]:
        lines = ["&2« &7Available commands &2»"]
        for command in self.command_map.commands:
            lines.append(f"&7- &a{command.get_help_line()}")
        lines.append("&7- &a/help &7- Show this list")
        lines.append("&7- &a/exit &7- Stop the console")
        return lines

    async def dispatch(self, requester: str, line: str) -> bool:
        """Parse one command line and run the matching command.

        Returns:
            The command's handled flag; False for blank or unknown input.
        """
        line = line.strip()
        if line.startswith("/"):
            line = line[1:]
        parts = line.split()
        if not parts:
            return False

        label, args = parts[0], parts[1:]
        if label.lower() == "help":
            for help_line in self.get_help_lines():
                await self.send_message(requester, help_line)
            return True

        command = self.command_map.get(label)
        if command is None:
            await self.send_message(
                requester, "&cUnknown command. Type /help for help."
            )
            return False

        try:
            handled = await command.execute(requester, label, args)
        except Exception as e:
            logger.exception(
                "command_execution_failed",
                command=label,
                requester=requester,
                error=str(e),
            )
            await self.send_message(
                requester, "&cAn internal error occurred while executing this command."
            )
            return True

        logger.debug("command_dispatched", command=label, requester=requester, handled=handled)
        return handled

    async def run_console(self, shutdown_event: asyncio.Event) -> None:
        """Read command lines from stdin until EOF, /exit, or shutdown."""
        read_line = await _stdin_reader()
        while not shutdown_event.is_set():
            line = await read_line()
            if not line:
                logger.info("console_eof")
                break
            if line.strip().lstrip("/").lower() in {"exit", "quit", "stop"}:
                break
            await self.dispatch(CONSOLE, line)
        shutdown_event.set()


async def _stdin_reader():
    """Return an async readline for stdin.

    Uses a non-blocking pipe reader where the platform supports it and
    falls back to a worker thread (Windows, regular-file redirects).
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
    except (NotImplementedError, ValueError, OSError):
        async def read_threaded() -> str:
            return await loop.run_in_executor(None, sys.stdin.readline)
        return read_threaded

    async def read_pipe() -> str:
        data = await reader.readline()
        return data.decode("utf-8", errors="replace")
    return read_pipe
