"""Manages the sharded on-disk layout: one directory per resource, named by the hash of its name.

    <chunks_dir>/<hash_path(resource_name)>/metadata   serialized FileMetadata
    <chunks_dir>/<hash_path(resource_name)>/<index>    raw chunk bytes
"""

import logging
from pathlib import Path
from typing import Union

from common.checksum import hash_path
from common.chunk_io import ensure_directory, read_file_bytes, write_file_atomic
from common.constants import METADATA_FILENAME
from common.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class ShardStore:
    """
    Chunk and metadata files for every resource under one root directory.

    Shard directories are created on first write and never removed.
    """

    def __init__(self, chunks_dir: Union[str, Path]):
        self.chunks_dir = Path(chunks_dir)

    def shard_dir(self, resource_name: str) -> Path:
        return self.chunks_dir / hash_path(resource_name)

    def chunk_path(self, resource_name: str, index: int) -> Path:
        return self.shard_dir(resource_name) / str(index)

    def metadata_path(self, resource_name: str) -> Path:
        return self.shard_dir(resource_name) / METADATA_FILENAME

    def write_chunk(self, resource_name: str, index: int, data: bytes) -> Path:
        """
        Store chunk ``index`` of a resource, replacing any previous copy.

        Returns:
            Path of the written chunk file

        Raises:
            StorageIOError: If the shard directory or file cannot be written
        """
        ensure_directory(self.shard_dir(resource_name))
        path = self.chunk_path(resource_name, index)
        write_file_atomic(path, data)
        logger.debug(f"Stored chunk {index} of {resource_name!r} ({len(data)} bytes) at {path}")
        return path

    def write_metadata(self, resource_name: str, raw: bytes) -> Path:
        """
        Store the serialized metadata record of a resource as received.

        Raises:
            StorageIOError: If the shard directory or file cannot be written
        """
        ensure_directory(self.shard_dir(resource_name))
        path = self.metadata_path(resource_name)
        write_file_atomic(path, raw)
        logger.debug(f"Stored metadata of {resource_name!r} at {path}")
        return path

    def read_chunk(self, resource_name: str, index: int) -> bytes:
        """
        Raises:
            NotFoundError: If the chunk was never stored
            StorageIOError: If the file exists but cannot be read
        """
        path = self.chunk_path(resource_name, index)
        try:
            return read_file_bytes(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"Chunk {index} of {resource_name!r} not found at {path}") from e

    def read_metadata(self, resource_name: str) -> bytes:
        """
        Raises:
            NotFoundError: If no metadata was stored for the resource
            StorageIOError: If the file exists but cannot be read
        """
        path = self.metadata_path(resource_name)
        try:
            return read_file_bytes(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"Metadata of {resource_name!r} not found at {path}") from e
