"""Configuration management for SystemInfo.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for the command framework, the speedtest command,
permissions and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("systeminfo.host")

DEFAULT_URL_TEMPLATE = "https://testfile.org/file-{size}GB"


class Config:
    """Central configuration manager for SystemInfo.

    Loads settings.yaml and .env from the config directory. Provides
    typed property accessors for every configurable subsystem.
    Read-only after __init__.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = config_dir

        env_file = config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    def validate(self):
        """Validate critical settings at startup.

        Logs warnings/errors but does not raise -- the host starts
        with whatever settings are usable.
        """
        if "{size}" not in self.settings.get("speedtest", {}).get(
            "url_template", DEFAULT_URL_TEMPLATE
        ):
            logger.error(
                "config_invalid_value",
                key="speedtest.url_template",
                valid="must contain {size}",
            )

        for key, types, low, high in (
            ("max_concurrent", int, 1, 64),
            ("read_timeout", (int, float), 1, 3600),
            ("connect_timeout", (int, float), 1, 600),
            ("timeout_per_unit", (int, float), 1, 86400),
        ):
            value = self._speedtest_section().get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, types) or not low <= value <= high:
                logger.error(
                    "config_invalid_value",
                    key=f"speedtest.{key}",
                    value=value,
                    valid=f"{low}-{high}",
                )

        perms = self.settings.get("permissions", {})
        if not isinstance(perms, dict):
            logger.error("permissions_invalid_type", type=type(perms).__name__)
        elif not perms:
            logger.warning("no_permissions_granted", msg="Only the console can run commands")

    def _speedtest_section(self) -> dict:
        section = self.settings.get("speedtest", {})
        return section if isinstance(section, dict) else {}

    @property
    def command_namespace(self) -> str:
        """Namespace prefix for registered commands (default "systeminfo")."""
        return self.settings.get("command_namespace", "systeminfo")

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"speedtest": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)

    @property
    def permissions(self) -> Dict[str, List[str]]:
        """Map of requester name to granted permission keys."""
        perms = self.settings.get("permissions", {})
        if not isinstance(perms, dict):
            return {}
        return {
            str(requester): [str(k) for k in keys]
            for requester, keys in perms.items()
            if isinstance(keys, list)
        }

    @property
    def speedtest_url_template(self) -> str:
        """Download URL template. Env var SYSTEMINFO_SPEEDTEST_URL takes precedence.

        Raises:
            ConfigurationError: if the template has no ``{size}`` placeholder.
        """
        template = os.environ.get("SYSTEMINFO_SPEEDTEST_URL") or self._speedtest_section().get(
            "url_template", DEFAULT_URL_TEMPLATE
        )
        if "{size}" not in template:
            raise ConfigurationError(
                "Speedtest URL template must contain {size}",
                setting_name="speedtest.url_template",
            )
        return template

    @property
    def speedtest_read_timeout(self) -> float:
        """Seconds a download may go without receiving data (default 30)."""
        return self._speedtest_section().get("read_timeout", 30)

    @property
    def speedtest_timeout_per_unit(self) -> Optional[float]:
        """Optional cap on total download time, in seconds per GB.

        Unset (the default) means a download may take as long as it
        keeps receiving data.
        """
        return self._speedtest_section().get("timeout_per_unit")

    @property
    def speedtest_connect_timeout(self) -> float:
        """Seconds allowed to establish the connection (default 10)."""
        return self._speedtest_section().get("connect_timeout", 10)

    @property
    def speedtest_chunk_size(self) -> int:
        """Bytes read from the socket per iteration (default 64 KiB)."""
        return self._speedtest_section().get("chunk_size", 65536)

    @property
    def speedtest_progress_interval(self) -> float:
        """Minimum seconds between two progress reports (default 1.0)."""
        return float(self._speedtest_section().get("progress_interval", 1.0))

    @property
    def speedtest_max_concurrent(self) -> int:
        """Maximum number of sessions running at once (default 4)."""
        return self._speedtest_section().get("max_concurrent", 4)

    @property
    def shutdown_grace_period(self) -> float:
        """Seconds to wait for background work on shutdown (default 5)."""
        return float(self.settings.get("shutdown_grace_period", 5))


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
