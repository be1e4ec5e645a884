"""/memory -- report host memory usage."""

from typing import List

import psutil

from ..formatting import format_bytes
from .base import SystemInfoCommand


class MemoryCommand(SystemInfoCommand):
    """Shows used, total and available memory plus the CPU count."""

    name = "memory"
    description = "Show memory usage"
    usage = "/<command>"
    aliases = ("mem",)
    permission = "systeminfo.commands.memory"

    async def execute(self, requester: str, label: str, args: List[str]) -> bool:
        if not self.test_permission(requester):
            return False

        mem = psutil.virtual_memory()
        await self.reply(
            requester,
            "&2« &7Memory &2»",
            f"&7» Used: &a{format_bytes(mem.used)} &7/ &a{format_bytes(mem.total)} "
            f"&7(&a{mem.percent:.1f}%&7)",
            f"&7» Available: &a{format_bytes(mem.available)}",
            f"&7» Logical CPUs: &a{psutil.cpu_count() or 1}",
        )
        return True
