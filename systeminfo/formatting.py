"""Colour markup for user-facing messages.

Messages use the ``&<code>`` syntax (``&7`` grey, ``&c`` red, ``&2``
dark green, ...). Hosts either translate codes to ANSI escapes for a
terminal or strip them for plain-text sinks.
"""

import re

_MARKUP_PATTERN = re.compile(r"&([0-9a-fk-or])", re.IGNORECASE)

_ANSI_CODES = {
    "0": "\033[30m",
    "1": "\033[34m",
    "2": "\033[32m",
    "3": "\033[36m",
    "4": "\033[31m",
    "5": "\033[35m",
    "6": "\033[33m",
    "7": "\033[37m",
    "8": "\033[90m",
    "9": "\033[94m",
    "a": "\033[92m",
    "b": "\033[96m",
    "c": "\033[91m",
    "d": "\033[95m",
    "e": "\033[93m",
    "f": "\033[97m",
    "k": "",
    "l": "\033[1m",
    "m": "\033[9m",
    "n": "\033[4m",
    "o": "\033[3m",
    "r": "\033[0m",
}

_RESET = "\033[0m"


def color(text: str) -> str:
    """Translate ``&`` colour codes into ANSI escape sequences."""
    translated = _MARKUP_PATTERN.sub(lambda m: _ANSI_CODES[m.group(1).lower()], text)
    if translated != text:
        translated += _RESET
    return translated


def strip_markup(text: str) -> str:
    """Remove ``&`` colour codes, leaving plain text."""
    return _MARKUP_PATTERN.sub("", text)


def format_bytes(num_bytes: float) -> str:
    """Human-readable byte count with two decimals (e.g. ``12.50 MB``)."""
    value = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if abs(value) < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def format_rate(bytes_per_second: float) -> str:
    """Bytes per second rendered as megabits per second (``94.37 Mbit/s``)."""
    return f"{bytes_per_second * 8 / 1_000_000:.2f} Mbit/s"
