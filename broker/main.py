"""Entry point for the broker service.
Starts the gRPC key space that clients publish to and chunkservers subscribe on.
"""

import asyncio
import signal
import sys

from common.logging_config import setup_logging
from broker.config import BROKER_HOST, BROKER_LISTEN_PORT, BROKER_QUERY_TIMEOUT_SECONDS
from broker.grpc_server import create_server

logger = setup_logging('broker')


async def serve() -> None:
    """Start and run the broker gRPC server until terminated."""
    server, _ = create_server(query_timeout=BROKER_QUERY_TIMEOUT_SECONDS)
    listen_addr = f'{BROKER_HOST}:{BROKER_LISTEN_PORT}'
    server.add_insecure_port(listen_addr)

    logger.info(f"Starting broker on {listen_addr}")
    await server.start()

    async def shutdown(sig=None):
        if sig:
            logger.info(f"Received signal {sig}, shutting down...")
        else:
            logger.info("Shutting down...")
        await server.stop(5)
        logger.info("Broker stopped")

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown(s)))

    await server.wait_for_termination()


def main() -> None:
    """Bootstrap broker service."""
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, broker shutdown complete")


if __name__ == "__main__":
    main()
