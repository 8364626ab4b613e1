"""Entry point for the Chunkserver service.
Loads configuration, connects to the broker and serves the resource space.
"""

import asyncio
import signal
import sys

from common.logging_config import setup_logging
from common.grpc_transport import GrpcTransport
from chunkserver.config import ConfigError, ServerConfig, load_server_config
from chunkserver.server import CDNServer

logger = setup_logging('chunkserver')


async def serve(config: ServerConfig) -> None:
    """
    Run the chunkserver until its streams end or a signal arrives.

    Args:
        config: Validated server configuration
    """
    transport = GrpcTransport(config.broker_address)
    server = CDNServer(transport, config)

    logger.info(f"Starting chunkserver [broker={config.broker_address}, chunks_dir={config.chunks_dir}]")
    task = server.serve()

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, task.cancel)

    try:
        await task
    except asyncio.CancelledError:
        logger.info("Shutting down...")
    finally:
        await transport.close()
        logger.info("Chunkserver stopped")


def main() -> None:
    """Bootstrap chunkserver service."""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    logger.info("Initializing chunkserver...")

    try:
        config = load_server_config(config_path)
    except ConfigError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, chunkserver shutdown complete")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
