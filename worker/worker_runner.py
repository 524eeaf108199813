"""Index worker process.

Consumes the durable change queue until SIGINT or SIGTERM. Several runners
may share one state database since every claim is atomic.

Usage:
    python -m worker.worker_runner
"""

import asyncio
import signal

from shared.errors import BackendUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from services.vector_index.bootstrap import build_engine


async def main() -> None:
    logger = setup_logging("worker")
    engine = build_engine(HelperConfig(logger=logger))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still cancels main()
            pass

    try:
        # only processes receiving change events need handlers
        await engine.start(register=False)
        try:
            await engine.check_backends()
        except BackendUnavailableError as e:
            logger.error("%s. Aborting.", e)
            return

        if not engine.settings.queue_enabled:
            logger.warning("VECTOR_QUEUE_ENABLED is false, changes are indexed inline and the queue stays empty.")
        await engine.worker.run(stop_event)
    finally:
        await engine.close()


if __name__ == "__main__":
    asyncio.run(main())
