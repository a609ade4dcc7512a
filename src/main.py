"""Entry point for the Raydium pool radar."""

import asyncio
import signal

from loguru import logger

from config.settings import settings
from src.app import build_app
from src.utils.logger import setup_logger


async def main() -> None:
    setup_logger(json_logs=settings.json_logs, level=settings.log_level)
    logger.info("Starting Raydium pool radar...")

    app = build_app(settings)

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    listener_task = asyncio.create_task(app.run())

    # Wait for either the listener to finish or shutdown signal
    done, pending = await asyncio.wait(
        [listener_task, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )

    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await app.close()
    logger.info("Shutdown complete")


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
