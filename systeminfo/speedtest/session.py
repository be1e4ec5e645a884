"""Asynchronous download throughput measurement.

A ThroughputSession downloads a test file of a given size class on its
own asyncio task and reports progress and the final outcome to a
SessionListener. The caller's coroutine returns as soon as start()
has scheduled the task.

Key classes:
    SizeClass: Allowed payload magnitudes (1, 10, 100 size units).
    SessionState: IDLE -> RUNNING -> COMPLETED | FAILED.
    SessionListener: Async callbacks with no-op defaults.
    ThroughputSession: One measurement run.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

import aiohttp
import structlog

from ..config import DEFAULT_URL_TEMPLATE
from ..exceptions import SessionCancelledError, SessionStateError, SpeedtestError

logger = structlog.get_logger("systeminfo.speedtest")


class SizeClass(IntEnum):
    """Payload magnitudes a session may download, in size units (GB)."""
    SMALL = 1
    MEDIUM = 10
    LARGE = 100

    @classmethod
    def from_units(cls, units: int) -> "SizeClass":
        """Return the size class for a number of units.

        Raises:
            ValueError: if units is not an allowed magnitude.
        """
        return cls(units)


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.FAILED})


@dataclass
class SessionResult:
    """Outcome of a completed session.

    Attributes:
        rate: Average bytes per second since start().
        total_bytes: Bytes downloaded.
        elapsed: Seconds between start() and the last byte.
    """
    rate: float
    total_bytes: int
    elapsed: float


class SessionListener:
    """Receives session events on the session's own task.

    Override the methods you need. on_progress is only ever called
    before the single terminal call (on_complete or on_error).
    """

    async def on_progress(self, bytes_so_far: int, rate: float) -> None:
        pass

    async def on_complete(self, rate: float, total_bytes: int, elapsed: float) -> None:
        pass

    async def on_error(self, cause: SpeedtestError) -> None:
        pass


class ThroughputSession:
    """One download throughput measurement.

    Sessions are single-use: once COMPLETED or FAILED, a new instance
    is needed to measure again.

    Args:
        listener: Receives progress and terminal events.
        url_template: Download URL with a ``{size}`` placeholder.
        read_timeout: Seconds a read may wait for data before the
            session fails.
        timeout_per_unit: Optional cap on the whole download, in seconds
            per size unit. None lets a download run as long as data
            keeps arriving.
        connect_timeout: Seconds allowed to connect.
        chunk_size: Bytes per read.
        progress_interval: Minimum seconds between progress events.
    """

    def __init__(
        self,
        listener: Optional[SessionListener] = None,
        *,
        url_template: str = DEFAULT_URL_TEMPLATE,
        read_timeout: float = 30,
        timeout_per_unit: Optional[float] = None,
        connect_timeout: float = 10,
        chunk_size: int = 65536,
        progress_interval: float = 1.0,
    ):
        self.listener = listener or SessionListener()
        self.url_template = url_template
        self.read_timeout = read_timeout
        self.timeout_per_unit = timeout_per_unit
        self.connect_timeout = connect_timeout
        self.chunk_size = chunk_size
        self.progress_interval = progress_interval

        self.state = SessionState.IDLE
        self.size_class: Optional[SizeClass] = None
        self.url: Optional[str] = None
        self.bytes_transferred = 0
        self.result: Optional[SessionResult] = None
        self.error: Optional[SpeedtestError] = None

        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._terminal = asyncio.Event()

    @classmethod
    def from_config(cls, config, listener: Optional[SessionListener] = None) -> "ThroughputSession":
        """Build a session from the speedtest settings of a Config."""
        return cls(
            listener,
            url_template=config.speedtest_url_template,
            read_timeout=config.speedtest_read_timeout,
            timeout_per_unit=config.speedtest_timeout_per_unit,
            connect_timeout=config.speedtest_connect_timeout,
            chunk_size=config.speedtest_chunk_size,
            progress_interval=config.speedtest_progress_interval,
        )

    @property
    def elapsed(self) -> float:
        """Seconds since start(), frozen once the session is terminal."""
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else time.monotonic()
        return end - self._started_at

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def start(self, size_class: SizeClass) -> None:
        """Schedule the download and return immediately.

        Must be called from a running event loop.

        Raises:
            SessionStateError: if the session is not IDLE.
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(
                f"Cannot start a session in state {self.state.value}",
                state=self.state.value,
            )
        loop = asyncio.get_running_loop()

        self.size_class = SizeClass(size_class)
        self.url = self.url_template.format(size=self.size_class.value)
        self._started_at = time.monotonic()
        self.state = SessionState.RUNNING
        self._task = loop.create_task(
            self._run(), name=f"speedtest-{self.size_class.value}"
        )
        logger.info("speedtest_started", url=self.url, size=self.size_class.value)

    def stop(self) -> None:
        """Cancel the measurement (best effort).

        A RUNNING session becomes FAILED with SessionCancelledError and
        no further listener callbacks are delivered. A session that
        already reached a terminal state is left untouched, including a
        terminal callback that is still being delivered.
        """
        if not self._claim_terminal(SessionState.FAILED, error=SessionCancelledError(url=self.url)):
            return
        logger.info("speedtest_stopped", url=self.url, bytes=self.bytes_transferred)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self, timeout: Optional[float] = None) -> None:
        """Wait for the background task to finish.

        If it is still running after ``timeout`` seconds, it is
        cancelled so it never outlives the grace period.
        """
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError:
            logger.warning("speedtest_grace_period_exceeded", url=self.url)
            self.stop()
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def wait_terminal(self) -> None:
        """Wait until the session is COMPLETED or FAILED."""
        await self._terminal.wait()

    def _claim_terminal(
        self,
        state: SessionState,
        result: Optional[SessionResult] = None,
        error: Optional[SpeedtestError] = None,
    ) -> bool:
        """Move to a terminal state exactly once. Returns False if already terminal."""
        if self.state is not SessionState.RUNNING:
            return False
        self._finished_at = time.monotonic()
        self.state = state
        self.result = result
        self.error = error
        self._terminal.set()
        return True

    async def _run(self) -> None:
        try:
            await self._download()
        except asyncio.CancelledError:
            self._claim_terminal(SessionState.FAILED, error=SessionCancelledError(url=self.url))
            raise
        except SpeedtestError as e:
            await self._fail(e)
        except asyncio.TimeoutError as e:
            await self._fail(SpeedtestError(self._timeout_message(e), url=self.url))
        except aiohttp.ClientResponseError as e:
            await self._fail(SpeedtestError(
                f"Server answered HTTP {e.status}", url=self.url, status=e.status,
            ))
        except (aiohttp.ClientError, OSError) as e:
            await self._fail(SpeedtestError(
                f"Connection failed: {e}", url=self.url, error_type=type(e).__name__,
            ))
        except Exception as e:
            logger.exception("speedtest_unexpected_error", url=self.url)
            await self._fail(SpeedtestError(
                f"Unexpected error: {e}", url=self.url, error_type=type(e).__name__,
            ))
        else:
            elapsed = time.monotonic() - self._started_at
            rate = self.bytes_transferred / elapsed if elapsed > 0 else 0.0
            result = SessionResult(rate=rate, total_bytes=self.bytes_transferred, elapsed=elapsed)
            if self._claim_terminal(SessionState.COMPLETED, result=result):
                logger.info(
                    "speedtest_completed",
                    url=self.url,
                    bytes=result.total_bytes,
                    elapsed=round(result.elapsed, 3),
                    rate=round(result.rate, 2),
                )
                await self._notify("on_complete", result.rate, result.total_bytes, result.elapsed)

    @property
    def total_timeout(self) -> Optional[float]:
        """Cap on the whole download for the started size class, if any."""
        if self.timeout_per_unit is None or self.size_class is None:
            return None
        return self.timeout_per_unit * self.size_class.value

    def _timeout_message(self, error: asyncio.TimeoutError) -> str:
        # aiohttp raises ServerTimeoutError for sock_read/sock_connect and a
        # plain TimeoutError when the total budget runs out
        if isinstance(error, aiohttp.ServerTimeoutError):
            if self.bytes_transferred:
                return f"No data received for {self.read_timeout}s"
            return f"Timed out waiting for the server ({error})"
        if self.total_timeout is not None:
            return f"Timed out after {self.total_timeout}s"
        return "Timed out"

    async def _download(self) -> None:
        timeout = aiohttp.ClientTimeout(
            total=self.total_timeout,
            sock_connect=self.connect_timeout,
            sock_read=self.read_timeout,
        )
        async with aiohttp.ClientSession(timeout=timeout) as http:
            async with http.get(self.url) as resp:
                if resp.status >= 400:
                    raise SpeedtestError(
                        f"Server answered HTTP {resp.status}", url=self.url, status=resp.status,
                    )
                last_time = self._started_at
                last_bytes = 0
                async for chunk in resp.content.iter_chunked(self.chunk_size):
                    self.bytes_transferred += len(chunk)
                    now = time.monotonic()
                    if now - last_time >= self.progress_interval:
                        rate = (self.bytes_transferred - last_bytes) / (now - last_time)
                        last_time, last_bytes = now, self.bytes_transferred
                        await self._notify("on_progress", self.bytes_transferred, rate)

    async def _fail(self, error: SpeedtestError) -> None:
        if self._claim_terminal(SessionState.FAILED, error=error):
            logger.warning(
                "speedtest_failed",
                url=self.url,
                error=error.message,
                status=error.status,
                bytes=self.bytes_transferred,
            )
            await self._notify("on_error", error)

    async def _notify(self, event: str, *args) -> None:
        """Deliver one listener callback; listener bugs never fail the session."""
        if event == "on_progress" and self.state is not SessionState.RUNNING:
            return
        try:
            await getattr(self.listener, event)(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "speedtest_listener_failed",
                listener_event=event,
                error=str(e),
                error_type=type(e).__name__,
            )
