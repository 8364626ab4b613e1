"""Persists published chunks and metadata records into the shard store."""

import logging

from common.exceptions import CDNException
from common.keys import KeySpace
from common.protocol import (
    ChangeKind,
    ChunkMessage,
    MetadataMessage,
    Sample,
    UnsupportedEncodingError,
    decode_sample,
)
from chunkserver.shard_storage import ShardStore

logger = logging.getLogger(__name__)


class IngestHandler:
    """
    Handles change notifications from the resource space subscription.

    Each call is independent: errors are logged and reported through the
    return value, never raised, so one bad message cannot stop the
    receive loop.
    """

    def __init__(self, key_space: KeySpace, store: ShardStore):
        self.key_space = key_space
        self.store = store

    def on_change(self, sample: Sample) -> bool:
        """
        Process one notification.

        Args:
            sample: Published sample with its key, payload tag and change kind

        Returns:
            True if a chunk or metadata file was written, False otherwise
        """
        if sample.kind is None:
            logger.warning(f"Dropping sample with unknown change kind at {sample.key}")
            return False

        logger.debug(f"Received {sample.kind.value} for {sample.key}")

        if sample.kind == ChangeKind.DELETE:
            # Stored chunks are never removed; retractions are acknowledged only.
            logger.debug(f"Ignoring retraction of {sample.key}")
            return False

        try:
            message = decode_sample(self.key_space, sample)
        except UnsupportedEncodingError as e:
            logger.warning(f"Dropping sample not correctly formatted: {e}")
            return False
        except CDNException as e:
            logger.error(f"Dropping sample at {sample.key}: {e}")
            return False

        try:
            if isinstance(message, ChunkMessage):
                self._store_chunk(message)
            else:
                self._store_metadata(sample.key, message)
        except CDNException as e:
            logger.error(f"Process file storage failed for {sample.key}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error storing {sample.key}: {e}", exc_info=True)
            return False
        return True

    def _store_chunk(self, message: ChunkMessage) -> None:
        path = self.store.write_chunk(message.resource_name, message.index, message.data)
        logger.info(
            f"Received {message.resource_name!r} chunk {message.index} "
            f"({len(message.data)} bytes) - stored in {path}"
        )

    def _store_metadata(self, key: str, message: MetadataMessage) -> None:
        expected_key = self.key_space.metadata_key(message.resource_name)
        if key != expected_key:
            logger.warning(
                f"Metadata published at {key} describes {message.resource_name!r}; "
                f"storing under the record's resource name"
            )
        path = self.store.write_metadata(message.resource_name, message.raw)
        logger.info(
            f"Received metadata for {message.resource_name!r} "
            f"(size={message.record.size}, chunks={message.record.chunks}) - stored in {path}"
        )
