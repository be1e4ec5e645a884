"""Tests for the /speedtest command."""

from unittest.mock import patch

import pytest

from conftest import sent_texts, serve, streaming_handler
from systeminfo.exceptions import (
    InvalidNumberError,
    SpeedtestError,
    UnsupportedSizeError,
)
from systeminfo.speedtest.command import SpeedtestCommand, SpeedtestReporter, parse_size
from systeminfo.speedtest.session import SessionState, SizeClass, ThroughputSession


def _size_list(texts):
    return [t.strip() for t in texts if t.strip().startswith("- ")]


class TestParseSize:

    @pytest.mark.parametrize("arg,expected", [
        ("1", SizeClass.SMALL),
        ("10", SizeClass.MEDIUM),
        ("100", SizeClass.LARGE),
        ("010", SizeClass.MEDIUM),
    ])
    def test_allowed(self, arg, expected):
        assert parse_size(arg) is expected

    @pytest.mark.parametrize("arg", ["abc", "1GB", "-5", "", "1.5", " 1", "1\n", "１"])
    def test_not_a_number(self, arg):
        with pytest.raises(InvalidNumberError):
            parse_size(arg)

    @pytest.mark.parametrize("arg", ["0", "2", "7", "50", "1000", "99999999999999999999"])
    def test_not_allowed(self, arg):
        with pytest.raises(UnsupportedSizeError):
            parse_size(arg)


class TestSpeedtestCommand:

    @pytest.mark.asyncio
    async def test_no_args_starts_small_session(self, ctx):
        """Scenario A: default size is 1 unit."""
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("admin", "speedtest", [])

        assert handled is True
        start.assert_called_once_with(SizeClass.SMALL)
        assert sent_texts(ctx.send_message) == ["« Speedtest »"]
        assert "admin" in command.active_sessions

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arg,expected", [
        ("1", SizeClass.SMALL),
        ("10", SizeClass.MEDIUM),
        ("100", SizeClass.LARGE),
    ])
    async def test_allowed_sizes_start_session(self, ctx, arg, expected):
        """Scenario B and the allow-list."""
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("admin", "speedtest", [arg])

        assert handled is True
        start.assert_called_once_with(expected)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arg", ["2", "7", "50", "1000"])
    async def test_disallowed_size_lists_allowed_sizes(self, ctx, arg):
        """Scenario C: no session, reply lists 1GB, 10GB, 100GB."""
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("admin", "speedtest", [arg])

        assert handled is True
        start.assert_not_called()
        texts = sent_texts(ctx.send_message)
        assert "too big or invalid" in texts[0]
        assert _size_list(texts) == ["- 1GB", "- 10GB", "- 100GB"]
        assert command.active_sessions == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arg", ["foo", "abc", "1GB", "-5"])
    async def test_non_numeric_size_rejected(self, ctx, arg):
        """Scenario D: invalid number message, no session."""
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("admin", "speedtest", [arg])

        assert handled is True
        start.assert_not_called()
        texts = sent_texts(ctx.send_message)
        assert len(texts) == 1
        assert "did not use a number" in texts[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("args", [[], ["1"], ["7"], ["foo"], ["1", "2"]])
    async def test_unauthorized_is_silent(self, ctx, args):
        """Scenario E: no reply, no session, not handled."""
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("guest", "speedtest", args)

        assert handled is False
        start.assert_not_called()
        ctx.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_more_than_one_argument_not_handled(self, ctx):
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("admin", "speedtest", ["1", "10"])

        assert handled is False
        start.assert_not_called()
        ctx.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_running_session_per_requester(self, ctx):
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            await command.execute("admin", "speedtest", [])
            await command.execute("admin", "speedtest", ["10"])

        assert start.call_count == 1
        assert "already running" in sent_texts(ctx.send_message)[-1]

    @pytest.mark.asyncio
    async def test_failed_header_send_releases_requester(self, ctx):
        failures = [ConnectionError("console gone")]

        async def flaky_send(requester, text):
            if failures:
                raise failures.pop()

        ctx.send_message.side_effect = flaky_send
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            with pytest.raises(ConnectionError):
                await command.execute("admin", "speedtest", [])
            assert command.active_sessions == {}

            handled = await command.execute("admin", "speedtest", [])

        assert handled is True
        start.assert_called_once_with(SizeClass.SMALL)
        assert "admin" in command.active_sessions
        assert "already running" not in "\n".join(sent_texts(ctx.send_message))

    @pytest.mark.asyncio
    async def test_concurrent_sessions_are_capped(self, ctx):
        ctx.config.settings = {"speedtest": {"max_concurrent": 2}}
        ctx = type(ctx)(
            config=ctx.config,
            send_message=ctx.send_message,
            has_permission=lambda requester, key: True,
        )
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            for requester in ("a", "b", "c"):
                await command.execute(requester, "speedtest", [])

        assert start.call_count == 2
        assert set(command.active_sessions) == {"a", "b"}
        assert "Too many" in sent_texts(ctx.send_message, "c")[-1]

    @pytest.mark.asyncio
    async def test_bad_url_template_reports_misconfiguration(self, ctx):
        ctx.config.settings = {"speedtest": {"url_template": "https://example.com/file"}}
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start") as start:
            handled = await command.execute("admin", "speedtest", [])

        assert handled is True
        start.assert_not_called()
        assert "not configured correctly" in sent_texts(ctx.send_message)[-1]

    @pytest.mark.asyncio
    async def test_full_run_reports_rate_and_total_bytes(self, ctx):
        """Scenario A end to end against a local endpoint."""
        async with serve(streaming_handler(chunks_per_unit=4)) as url:
            ctx.config.settings = {
                "speedtest": {"url_template": url, "chunk_size": 1024, "progress_interval": 0},
            }
            command = SpeedtestCommand(ctx)
            await command.execute("admin", "speedtest", [])
            session = command.active_sessions["admin"]
            await session.wait_closed(5)

        assert session.state is SessionState.COMPLETED
        assert command.active_sessions == {}
        texts = sent_texts(ctx.send_message)
        assert texts[0] == "« Speedtest »"
        completed = texts.index("» Speedtest completed!")
        assert all(t.startswith("» Downloaded") for t in texts[1:completed])
        summary = "\n".join(texts[completed:])
        assert "Mbit/s" in summary
        assert "4096 bytes" in summary

    @pytest.mark.asyncio
    async def test_close_stops_running_sessions(self, ctx):
        command = SpeedtestCommand(ctx)
        with patch.object(ThroughputSession, "start"):
            await command.execute("admin", "speedtest", [])
        session = command.active_sessions["admin"]
        with patch.object(ThroughputSession, "stop") as stop:
            await command.close()

        stop.assert_called_once_with()
        assert command.active_sessions == {}
        assert session.state is SessionState.IDLE


class TestSpeedtestReporter:

    @pytest.mark.asyncio
    async def test_error_is_one_line_message(self, ctx):
        command = SpeedtestCommand(ctx)
        reporter = SpeedtestReporter(command, "admin")
        await reporter.on_error(SpeedtestError("Server answered HTTP 503", status=503))

        assert sent_texts(ctx.send_message) == ["» Speedtest failed: Server answered HTTP 503"]

    @pytest.mark.asyncio
    async def test_completion_formats_two_decimals(self, ctx):
        command = SpeedtestCommand(ctx)
        reporter = SpeedtestReporter(command, "admin")
        await reporter.on_complete(1_250_000.0, 2_500_000, 2.0)

        texts = sent_texts(ctx.send_message)
        assert "Average speed: 10.00 Mbit/s" in texts[1]
        assert "2500000 bytes" in texts[2]
        assert "Time: 2.00s" in texts[3]
