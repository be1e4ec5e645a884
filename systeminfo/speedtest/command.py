"""/speedtest -- measure download throughput from the host.

Usage::

    /speedtest          # 1GB test file
    /speedtest <size>   # size in GB, one of 1, 10, 100
"""

import re
from typing import Dict, List

from ..commands.base import CommandContext, SystemInfoCommand
from ..exceptions import (
    ConfigurationError,
    InvalidNumberError,
    SpeedtestError,
    UnsupportedSizeError,
)
from ..formatting import format_bytes, format_rate
from .session import SessionListener, SizeClass, ThroughputSession

NUMBER_PATTERN = re.compile(r"[0-9]+")

PERMISSION = "systeminfo.commands.speedtest"


def parse_size(argument: str) -> SizeClass:
    """Parse a size argument into a SizeClass.

    Raises:
        InvalidNumberError: if the argument is not a plain digit string.
        UnsupportedSizeError: if the number is not an allowed size.
    """
    if not NUMBER_PATTERN.fullmatch(argument):
        raise InvalidNumberError("Size is not a number", argument=argument)
    try:
        return SizeClass.from_units(int(argument))
    except ValueError:
        raise UnsupportedSizeError("Size is not allowed", argument=argument) from None


class SpeedtestReporter(SessionListener):
    """Relays session events to the requester as chat messages.

    Args:
        command: Owning command, notified when the session ends.
        requester: Recipient of the messages.
    """

    def __init__(self, command: "SpeedtestCommand", requester: str):
        self.command = command
        self.requester = requester

    async def on_progress(self, bytes_so_far: int, rate: float) -> None:
        await self.command.ctx.send_message(
            self.requester,
            f"&7» Downloaded &a{format_bytes(bytes_so_far)} &7at &a{format_rate(rate)}",
        )

    async def on_complete(self, rate: float, total_bytes: int, elapsed: float) -> None:
        self.command.session_finished(self.requester)
        await self.command.reply(
            self.requester,
            "&7» &aSpeedtest completed!",
            f"  &7Average speed: &a{format_rate(rate)} &7({format_bytes(rate)}/s)",
            f"  &7Downloaded: &a{format_bytes(total_bytes)} &7({total_bytes} bytes)",
            f"  &7Time: &a{elapsed:.2f}s",
        )

    async def on_error(self, cause: SpeedtestError) -> None:
        self.command.session_finished(self.requester)
        await self.command.ctx.send_message(
            self.requester, f"&7» &cSpeedtest failed: {cause.message}"
        )


class SpeedtestCommand(SystemInfoCommand):
    """Runs a download speedtest and reports the results to the requester.

    Each requester may have one running session; the total number of
    running sessions is capped by ``speedtest.max_concurrent``.
    """

    name = "speedtest"
    description = "Perform a network speedtest"
    usage = "/<command> <GBs>"
    permission = PERMISSION

    def __init__(self, ctx: CommandContext):
        super().__init__(ctx)
        self._sessions: Dict[str, ThroughputSession] = {}

    @property
    def active_sessions(self) -> Dict[str, ThroughputSession]:
        """Running sessions keyed by requester (copy)."""
        return dict(self._sessions)

    async def execute(self, requester: str, label: str, args: List[str]) -> bool:
        if not self.test_permission(requester):
            return False

        if len(args) == 0:
            await self.perform_speedtest(requester, SizeClass.SMALL)
            return True

        if len(args) == 1:
            try:
                size_class = parse_size(args[0])
            except InvalidNumberError:
                await self.reply(
                    requester,
                    "&7» &cYou did not use a number as the download size argument!",
                )
                return True
            except UnsupportedSizeError:
                await self.reply(
                    requester,
                    "&7» &cYou used a file size that is too big or invalid!",
                    "  &7The only available file sizes are:",
                    *(f"  &7- &c{10 ** i}&7GB" for i in range(len(SizeClass))),
                )
                return True
            await self.perform_speedtest(requester, size_class)
            return True

        return False

    async def perform_speedtest(self, requester: str, size_class: SizeClass) -> None:
        """Create and start a session whose events go to the requester."""
        running = self._sessions.get(requester)
        if running is not None and not running.is_terminal:
            await self.reply(requester, "&7» &cA speedtest is already running for you!")
            return
        if len(self._sessions) >= self.ctx.config.speedtest_max_concurrent:
            self.ctx.logger.warning(
                "speedtest_limit_reached",
                requester=requester,
                running=len(self._sessions),
            )
            await self.reply(
                requester, "&7» &cToo many speedtests are running, try again later!"
            )
            return

        try:
            session = ThroughputSession.from_config(
                self.ctx.config, SpeedtestReporter(self, requester)
            )
        except ConfigurationError as e:
            self.ctx.logger.error("speedtest_misconfigured", error=str(e))
            await self.reply(requester, "&7» &cSpeedtest is not configured correctly.")
            return

        self._sessions[requester] = session
        try:
            await self.reply(requester, "&2« &7Speedtest &2»")
        except Exception:
            del self._sessions[requester]
            raise
        session.start(size_class)

    def session_finished(self, requester: str) -> None:
        """Forget the requester's session once it reached a terminal state."""
        session = self._sessions.get(requester)
        if session is not None and session.is_terminal:
            del self._sessions[requester]

    async def close(self) -> None:
        """Stop every running session and wait for it within the grace period."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.stop()
        for session in sessions:
            await session.wait_closed(self.ctx.config.shutdown_grace_period)
