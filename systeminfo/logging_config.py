"""Logging configuration for SystemInfo.

Everything under the ``systeminfo`` logger goes to stderr and to a
combined ``systeminfo.log``. Each subsystem (``systeminfo.commands``,
``systeminfo.speedtest``, ``systeminfo.host``) also gets its own
rotating file with an independently configurable level.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

SUBSYSTEMS = ("commands", "speedtest", "host")

LOGGER_PREFIX = "systeminfo"

_REDACTED = "***REDACTED***"

_SECRET_PATTERNS = [
    re.compile(r"Bearer\s+[a-zA-Z0-9_./-]{20,}"),
    re.compile(r"(?<=[?&])(?:token|key|api_key|access_token)=[^&\s]+", re.IGNORECASE),
]

# user:password@ in URLs
_URL_CREDENTIALS = re.compile(r"(?<=://)[^/\s:@]+:[^/\s@]+@")


def _scrub(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return _URL_CREDENTIALS.sub(_REDACTED + "@", value)


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that scrubs tokens and URL credentials.

    Strings are scrubbed at the top level and one level deep inside
    lists, tuples and dicts.
    """
    for key, value in event_dict.items():
        if isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(_scrub(v) for v in value)
        elif isinstance(value, dict):
            event_dict[key] = {k: _scrub(v) for k, v in value.items()}
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def _level(name: str, default: int) -> int:
    return getattr(logging, name.upper(), default) if name else default


def _reset(name: str, level: int) -> logging.Logger:
    log = logging.getLogger(name)
    log.setLevel(level)
    log.handlers.clear()
    log.propagate = True
    return log


def setup_logging(config=None) -> None:
    """Configure structlog on top of stdlib logging.

    Called twice by the entry point: once with no config so early
    messages have somewhere to go (loggers are not cached), then again
    with the loaded Config (loggers are cached).
    """
    if config is None:
        log_dir = Path(__file__).parent.parent / "logs"
        root_level = logging.INFO
        subsystem_levels: Dict[str, str] = {}
        max_bytes, backup_count = 10 * 1024 * 1024, 5
    else:
        log_dir = config.log_dir
        root_level = _level(config.logging_level, logging.INFO)
        subsystem_levels = config.logging_subsystem_levels
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        write_files = True
    except OSError as exc:
        print(f"WARNING: Cannot create log directory {log_dir}: {exc}", file=sys.stderr)
        write_files = False

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    def add_file(log: logging.Logger, filename: str, level: int) -> None:
        if not write_files:
            return
        handler = logging.handlers.RotatingFileHandler(
            log_dir / filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(file_formatter)
        log.addHandler(handler)

    # stderr keeps log lines apart from command output on stdout
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(root_level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root = _reset("", logging.DEBUG)
    root.addHandler(console)

    add_file(_reset(LOGGER_PREFIX, logging.DEBUG), f"{LOGGER_PREFIX}.log", root_level)
    for subsystem in SUBSYSTEMS:
        level = _level(subsystem_levels.get(subsystem, ""), root_level)
        add_file(_reset(f"{LOGGER_PREFIX}.{subsystem}", level), f"{subsystem}.log", level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config is not None,
    )
