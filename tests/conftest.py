"""Shared pytest fixtures for all tests."""

import asyncio
import os

import pytest
import pytest_asyncio

from common.keys import KeySpace
from common.transport import InMemoryTransport
from chunkserver.config import ServerConfig
from chunkserver.server import CDNServer
from chunkserver.shard_storage import ShardStore
from cli.config import Config


async def wait_until(predicate, timeout: float = 5.0) -> None:
    """
    Poll until predicate() is true.

    Raises:
        AssertionError: If the timeout elapses first
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def key_space():
    """Default key space rooted at /cdn."""
    return KeySpace()


@pytest.fixture
def chunks_dir(tmp_path):
    """
    Create temporary chunk storage directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to the directory
    """
    path = tmp_path / 'chunks'
    path.mkdir()
    return path


@pytest.fixture
def store(chunks_dir):
    return ShardStore(chunks_dir)


@pytest.fixture
def server_config(chunks_dir):
    return ServerConfig(chunks_dir=chunks_dir, resource_space='/cdn/**')


@pytest.fixture
def temp_config(tmp_path):
    """
    Create temporary CLI config instance.

    Returns:
        Config instance with temp config file
    """
    return Config(tmp_path / '.cdn' / 'config.json')


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a 2,500,000-byte file of random content.

    Returns:
        Path to the file
    """
    file_path = tmp_path / 'sample.bin'
    file_path.write_bytes(os.urandom(2_500_000))
    return file_path


@pytest_asyncio.fixture
async def transport():
    """In-process transport, closed after the test."""
    transport = InMemoryTransport()
    yield transport
    await transport.close()


@pytest_asyncio.fixture
async def server(transport, server_config):
    """
    Chunkserver running on the in-process transport.

    Yields:
        Started CDNServer
    """
    server = CDNServer(transport, server_config)
    server.serve()
    await asyncio.wait_for(server.ready.wait(), timeout=5)
    yield server
    await server.stop()
