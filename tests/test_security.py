"""Tests for permission checks."""

from unittest.mock import MagicMock, patch

import pytest

from systeminfo.security import CONSOLE, has_permission

GRANTS = {
    "alice": ["systeminfo.commands.*"],
    "bob": ["systeminfo.commands.memory"],
    "root": ["*"],
}


@pytest.mark.parametrize("requester,key,expected", [
    ("alice", "systeminfo.commands.speedtest", True),
    ("alice", "systeminfo.admin", False),
    ("bob", "systeminfo.commands.memory", True),
    ("bob", "systeminfo.commands.speedtest", False),
    ("bob", "systeminfo.commands.memoryx", False),
    ("root", "anything.at.all", True),
    ("mallory", "systeminfo.commands.memory", False),
])
def test_has_permission(requester, key, expected):
    assert has_permission(requester, key, GRANTS) is expected


def test_console_holds_every_permission():
    assert has_permission(CONSOLE, "systeminfo.commands.speedtest", {}) is True


def test_defaults_to_configured_grants():
    config = MagicMock()
    config.permissions = {"carol": ["systeminfo.commands.speedtest"]}
    with patch("systeminfo.security.get_config", return_value=config):
        assert has_permission("carol", "systeminfo.commands.speedtest") is True
        assert has_permission("dave", "systeminfo.commands.speedtest") is False
