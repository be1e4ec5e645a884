"""Shared fixtures for SystemInfo tests."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from aiohttp import test_utils, web

from systeminfo.commands.base import CommandContext
from systeminfo.config import Config
from systeminfo.formatting import strip_markup
from systeminfo.speedtest.session import SessionListener


@pytest.fixture
def config(tmp_path, monkeypatch):
    """A Config with no files on disk; tests fill in settings directly."""
    monkeypatch.delenv("SYSTEMINFO_SPEEDTEST_URL", raising=False)
    cfg = Config(config_dir=tmp_path)
    cfg.settings = {}
    return cfg


@pytest.fixture
def ctx(config):
    """CommandContext where only "admin" holds permissions."""
    return CommandContext(
        config=config,
        send_message=AsyncMock(),
        has_permission=lambda requester, key: requester == "admin",
    )


def sent_texts(send_message: AsyncMock, requester=None):
    """Plain-text messages passed to a send_message mock."""
    return [
        strip_markup(c.args[1])
        for c in send_message.call_args_list
        if requester is None or c.args[0] == requester
    ]


class RecordingListener(SessionListener):
    """Collects session events in delivery order."""

    def __init__(self):
        self.events = []

    async def on_progress(self, bytes_so_far, rate):
        self.events.append(("progress", bytes_so_far, rate))

    async def on_complete(self, rate, total_bytes, elapsed):
        self.events.append(("complete", rate, total_bytes, elapsed))

    async def on_error(self, cause):
        self.events.append(("error", cause))

    @property
    def kinds(self):
        return [e[0] for e in self.events]


@asynccontextmanager
async def serve(handler):
    """Run a local download endpoint; yields a ``{size}`` URL template."""
    app = web.Application()
    app.router.add_get(r"/file-{size:\d+}GB", handler)
    server = test_utils.TestServer(app, host="127.0.0.1")
    await server.start_server()
    try:
        yield f"http://127.0.0.1:{server.port}/file-{{size}}GB"
    finally:
        await server.close()


def streaming_handler(chunk_size=1024, chunks_per_unit=4, delay=0.0):
    """Handler streaming ``size * chunks_per_unit`` chunks of zero bytes."""
    async def handler(request):
        size = int(request.match_info["size"])
        resp = web.StreamResponse()
        resp.content_length = size * chunks_per_unit * chunk_size
        await resp.prepare(request)
        for _ in range(size * chunks_per_unit):
            await resp.write(b"\0" * chunk_size)
            await asyncio.sleep(delay)
        await resp.write_eof()
        return resp
    return handler
