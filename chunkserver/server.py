"""Chunkserver event loop: one subscription and one queryable on the resource space."""

import asyncio
import logging
from typing import Optional

from common.keys import KeySpace
from common.transport import Transport
from chunkserver.config import ServerConfig
from chunkserver.ingest_handler import IngestHandler
from chunkserver.query_handler import QueryHandler
from chunkserver.shard_storage import ShardStore

logger = logging.getLogger(__name__)


class CDNServer:
    """
    Ingests published chunks/metadata and serves them back.

    Notifications and queries are taken one at a time from either source
    and each handler runs to completion before the next message, so
    writes to a shard are never concurrent.
    """

    def __init__(self, transport: Transport, config: ServerConfig):
        """
        Initialize server with its transport and configuration.

        Args:
            transport: Key/value transport to subscribe and answer queries on
            config: Server settings (chunks directory, resource space)
        """
        self.transport = transport
        self.config = config
        self.key_space: KeySpace = config.key_space()
        self.store = ShardStore(config.chunks_dir)
        self.ingest_handler = IngestHandler(self.key_space, self.store)
        self.query_handler = QueryHandler(self.key_space, self.store)
        self.task: Optional[asyncio.Task] = None
        self.ready = asyncio.Event()

    def serve(self) -> asyncio.Task:
        """Start the receive loop as a background task."""
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self.run())
        return self.task

    async def stop(self) -> None:
        """Stop the background receive loop."""
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("Chunkserver stopped")

    async def run(self) -> None:
        """
        Receive loop. Returns when either inbound stream ends.
        """
        resource_space = self.config.resource_space
        subscription = await self.transport.subscribe(resource_space)
        queryable = await self.transport.register_queryable(resource_space)
        logger.info(
            f"Serving {resource_space} from {self.store.chunks_dir} [prefix={self.key_space.prefix}]"
        )
        self.ready.set()

        next_sample = asyncio.ensure_future(subscription.__anext__())
        next_query = asyncio.ensure_future(queryable.__anext__())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {next_sample, next_query}, return_when=asyncio.FIRST_COMPLETED
                )

                if next_sample in done:
                    try:
                        sample = next_sample.result()
                    except StopAsyncIteration:
                        logger.warning("Subscription closed, stopping chunkserver loop")
                        break
                    try:
                        self.ingest_handler.on_change(sample)
                    except Exception as e:
                        logger.error(f"Process file storage failed: {e}", exc_info=True)
                    next_sample = asyncio.ensure_future(subscription.__anext__())

                if next_query in done:
                    try:
                        query = next_query.result()
                    except StopAsyncIteration:
                        logger.warning("Queryable closed, stopping chunkserver loop")
                        break
                    try:
                        await self.query_handler.on_query(query)
                    except Exception as e:
                        logger.error(f"Process file retrieve failed: {e}", exc_info=True)
                    next_query = asyncio.ensure_future(queryable.__anext__())
        finally:
            next_sample.cancel()
            next_query.cancel()
            if next_query.done() and not next_query.cancelled() and next_query.exception() is None:
                await next_query.result().finish()
            await subscription.close()
            await queryable.close()
            self.ready.clear()
