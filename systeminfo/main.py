"""Entry point for the ``systeminfo`` console script.

Logging is configured twice: with defaults before the config loads,
then from the config. The console loop runs until stdin closes, the
operator types ``exit``, or SIGTERM/SIGINT arrives.
"""

import asyncio
import signal

import structlog

from . import __version__
from .logging_config import setup_logging


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, shutdown_event: asyncio.Event, logger) -> None:
    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows event loops only support SIGINT through signal.signal
            if sig == signal.SIGINT:
                signal.signal(
                    sig, lambda s, f: loop.call_soon_threadsafe(handle_shutdown, signal.SIGINT)
                )


async def main():
    setup_logging()
    logger = structlog.get_logger("systeminfo")
    logger.info("systeminfo_starting", version=__version__)

    # Imported after logging is configured
    from .config import get_config
    from .host import ConsoleHost
    from .security import CONSOLE

    config = get_config()
    config.validate()
    setup_logging(config)

    host = ConsoleHost(config)
    host.start()

    shutdown_event = asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), shutdown_event, logger)

    try:
        for help_line in host.get_help_lines():
            await host.send_message(CONSOLE, help_line)

        console_task = asyncio.create_task(host.run_console(shutdown_event))
        await shutdown_event.wait()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
    except Exception:
        logger.exception("host_error")
        raise
    finally:
        await host.stop()
        logger.info("systeminfo_stopped")


def run():
    """Synchronous wrapper around main()."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
