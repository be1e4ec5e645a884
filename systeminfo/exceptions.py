"""Custom exception hierarchy for SystemInfo.

Provides error classification across the command framework, the
speedtest session and configuration loading, so callers can decide
between retrying, reporting, and skipping.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Network hiccups, timeouts
    PERMANENT = "permanent"          # Bad input, broken command class
    INFRASTRUCTURE = "infrastructure"  # Missing config, env issues


class SystemInfoError(Exception):
    """Base exception for all SystemInfo errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "speedtest.session").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Command framework exceptions
# ---------------------------------------------------------------------------

class CommandConstructionError(SystemInfoError):
    """A catalogue entry could not be turned into a command instance.

    Attributes:
        display_name: Display name of the failing descriptor.
    """

    def __init__(
        self,
        message: str = "",
        *,
        display_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.display_name = display_name
        super().__init__(
            message, category=category, module=module or "commands.registry", **context
        )


class InvalidArgumentError(SystemInfoError):
    """A command argument was rejected.

    Attributes:
        argument: The raw argument as typed by the user.
    """

    def __init__(
        self,
        message: str = "",
        *,
        argument: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.argument = argument
        super().__init__(
            message, category=category, module=module or "commands", **context
        )


class InvalidNumberError(InvalidArgumentError):
    """The argument is not a non-negative integer literal."""


class UnsupportedSizeError(InvalidArgumentError):
    """The argument is a number but not one of the allowed sizes."""


# ---------------------------------------------------------------------------
# Speedtest exceptions
# ---------------------------------------------------------------------------

class SpeedtestError(SystemInfoError):
    """Network failure during a throughput measurement.

    Defaults to TRANSIENT: connection resets and timeouts usually clear
    up on their own, although sessions are never retried automatically.

    Attributes:
        url: Download URL of the failed session.
        status: HTTP status code, if the server answered.
    """

    def __init__(
        self,
        message: str = "",
        *,
        url: Optional[str] = None,
        status: Optional[int] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.url = url
        self.status = status
        super().__init__(
            message, category=category, module=module or "speedtest.session", **context
        )


class SessionCancelledError(SpeedtestError):
    """The session was stopped before it finished."""

    def __init__(self, message: str = "Speedtest was cancelled", **kwargs: Any) -> None:
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        super().__init__(message, **kwargs)


class SessionStateError(SystemInfoError):
    """A session operation was called in the wrong state."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "speedtest.session", **context
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(SystemInfoError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )
