"""Integration tests: client and chunkserver talking through a real gRPC broker."""

import os

import pytest
import pytest_asyncio

from common.exceptions import NotFoundError
from common.grpc_transport import GrpcTransport
from common.protocol import Encoding
from broker.grpc_server import create_server
from chunkserver.server import CDNServer
from cli.client import CDNClient
from tests.conftest import wait_until


@pytest_asyncio.fixture
async def broker():
    """Broker listening on an ephemeral local port."""
    server, servicer = create_server(query_timeout=5)
    port = server.add_insecure_port('127.0.0.1:0')
    await server.start()
    yield f'127.0.0.1:{port}', servicer
    await server.stop(None)


@pytest_asyncio.fixture
async def remote_server(broker, server_config):
    """Chunkserver connected to the broker."""
    address, servicer = broker
    transport = GrpcTransport(address)
    server = CDNServer(transport, server_config)
    server.serve()
    await server.ready.wait()
    await wait_until(lambda: servicer._subscribers and servicer._queryables)
    yield server
    await server.stop()
    await transport.close()


@pytest_asyncio.fixture
async def client_transport(broker):
    transport = GrpcTransport(broker[0])
    yield transport
    await transport.close()


@pytest.mark.asyncio
async def test_upload_download_through_broker(remote_server, client_transport, tmp_path):
    source = tmp_path / 'video.bin'
    source.write_bytes(os.urandom(100_000))
    client = CDNClient(client_transport, chunk_size=16_384, query_timeout=5)

    await client.upload(source, 'videos/clip.bin')
    await wait_until(lambda: remote_server.store.metadata_path('videos/clip.bin').exists())
    restored = await client.download('videos/clip.bin', tmp_path / 'restored.bin')

    assert restored.read_bytes() == source.read_bytes()
    assert sorted(p.name for p in remote_server.store.shard_dir('videos/clip.bin').iterdir()) == [
        '0', '1', '2', '3', '4', '5', '6', 'metadata'
    ]


@pytest.mark.asyncio
async def test_publish_reports_delivery_count(remote_server, client_transport, key_space):
    delivered = await client_transport.publish(key_space.chunk_key('x', 0), b'data', Encoding.OCTET_STREAM)
    outside = await client_transport.publish('/elsewhere/files/x/0', b'data', Encoding.OCTET_STREAM)

    assert delivered == 1
    assert outside == 0


@pytest.mark.asyncio
async def test_query_without_responders_is_empty(broker, client_transport):
    assert await client_transport.query('/cdn/files/anything', timeout=1) == []


@pytest.mark.asyncio
async def test_missing_resource_not_found(remote_server, client_transport, tmp_path):
    client = CDNClient(client_transport, query_timeout=5)

    with pytest.raises(NotFoundError):
        await client.download('never/uploaded', tmp_path / 'out.bin')
