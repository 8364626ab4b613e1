"""Answers queries for stored chunks and metadata records."""

import logging

from common.exceptions import CDNException, MalformedKeyError
from common.keys import ChunkRef, KeySpace
from common.protocol import Encoding, Sample
from common.transport import Query
from chunkserver.shard_storage import ShardStore

logger = logging.getLogger(__name__)


class QueryHandler:
    """
    Resolves a queried key to a disk artifact and replies with it.

    A chunk key gets the raw bytes tagged as binary; any other key in the
    space gets the stored metadata text tagged as JSON. A missing artifact
    produces no reply, which the querier sees as not found.
    """

    def __init__(self, key_space: KeySpace, store: ShardStore):
        self.key_space = key_space
        self.store = store

    def resolve(self, selector: str) -> Sample:
        """
        Read the artifact addressed by ``selector``.

        Raises:
            MalformedKeyError: If the selector is a pattern or lies outside the key space
            NotFoundError: If the artifact was never stored
            StorageIOError: If the artifact cannot be read
        """
        if '*' in selector:
            raise MalformedKeyError(f"Malformed query {selector!r}: selectors must be concrete keys")

        ref = self.key_space.classify(selector)
        if isinstance(ref, ChunkRef):
            logger.debug(f"Getting chunk {ref.index} for {ref.resource_name!r}")
            data = self.store.read_chunk(ref.resource_name, ref.index)
            return Sample(key=selector, payload=data, encoding=Encoding.OCTET_STREAM)

        logger.debug(f"Getting metadata for {ref.resource_name!r}")
        raw = self.store.read_metadata(ref.resource_name)
        return Sample(key=selector, payload=raw, encoding=Encoding.JSON)

    async def on_query(self, query: Query) -> bool:
        """
        Answer one query; the query is always finished, whatever the outcome.

        Returns:
            True if a reply was sent
        """
        try:
            logger.debug(f"Received query {query.selector}")
            reply = self.resolve(query.selector)
            await query.reply(reply)
            return True
        except CDNException as e:
            logger.error(f"Process file retrieve failed for {query.selector}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error answering {query.selector}: {e}", exc_info=True)
            return False
        finally:
            await query.finish()
