"""Tests for the chunkserver receive loop."""

import asyncio

import pytest

from common.protocol import Encoding
from common.types import FileMetadata
from tests.conftest import wait_until


@pytest.mark.asyncio
async def test_server_declares_subscription_and_queryable(server, transport):
    assert server.ready.is_set()
    assert [s.key_expr for s in transport._subscriptions] == ['/cdn/**']
    assert [q.key_expr for q in transport._queryables] == ['/cdn/**']


@pytest.mark.asyncio
async def test_malformed_publication_does_not_stop_loop(server, transport, store, key_space):
    await transport.publish(key_space.metadata_key('bad'), b'raw bytes', Encoding.OCTET_STREAM)
    await transport.publish(key_space.metadata_key('worse'), b'{not json', Encoding.JSON)
    await transport.publish(key_space.chunk_key('good', 0), b'ok', Encoding.OCTET_STREAM)

    await wait_until(lambda: store.chunk_path('good', 0).exists())
    assert not server.task.done()
    assert not store.shard_dir('bad').exists()
    assert not store.shard_dir('worse').exists()


@pytest.mark.asyncio
async def test_delete_is_ignored(server, transport, store, key_space):
    await transport.publish(key_space.chunk_key('kept', 0), b'data', Encoding.OCTET_STREAM)
    await wait_until(lambda: store.chunk_path('kept', 0).exists())

    await transport.delete(key_space.chunk_key('kept', 0))
    await transport.publish(key_space.chunk_key('kept', 1), b'more', Encoding.OCTET_STREAM)
    await wait_until(lambda: store.chunk_path('kept', 1).exists())

    assert store.read_chunk('kept', 0) == b'data'


@pytest.mark.asyncio
async def test_query_for_missing_chunk_gets_no_reply(server, transport, key_space):
    replies = await transport.query(key_space.chunk_key('absent', 0), timeout=2)

    assert replies == []
    assert not server.task.done()


@pytest.mark.asyncio
async def test_query_returns_stored_metadata(server, transport, store, key_space):
    record = FileMetadata(
        filename='a.txt', checksum='AB', chunk_size=4, chunks=1, resource_name='a.txt', size=3
    )
    await transport.publish(key_space.metadata_key('a.txt'), record.serialize().encode(), Encoding.JSON)
    await wait_until(lambda: store.metadata_path('a.txt').exists())

    replies = await transport.query(key_space.metadata_key('a.txt'), timeout=2)

    assert len(replies) == 1
    assert replies[0].encoding == Encoding.JSON
    assert FileMetadata.deserialize(replies[0].payload) == record


@pytest.mark.asyncio
async def test_loop_ends_when_transport_closes(server, transport):
    await transport.close()

    await asyncio.wait_for(server.task, timeout=5)
    assert not server.ready.is_set()


@pytest.mark.asyncio
async def test_stop_cancels_loop(server):
    task = server.task

    await server.stop()

    assert task.done()
    assert server.task is None
