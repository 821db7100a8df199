"""
Standalone worker process.

Runs the worker pool and the optional auto-sync scheduler without the
HTTP API. Stops on SIGINT or SIGTERM.
"""

import asyncio
import signal

import structlog

from .core.config import get_settings
from .core.logging import configure_logging
from .services.container import ServiceContainer

logger = structlog.get_logger()


async def run_workers() -> None:
    services = await ServiceContainer.build()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await services.start_background()
    logger.info("Worker process started")
    try:
        await stop_event.wait()
    finally:
        await services.close()
        logger.info("Worker process stopped")


def main() -> None:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    asyncio.run(run_workers())


if __name__ == "__main__":
    main()
