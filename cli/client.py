"""Client that splits files into chunks for publication and reassembles them on download."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from common.checksum import checksums_match, compute_file_checksum
from common.chunk_io import allocate_destination, file_size, read_chunk, write_chunk_at
from common.constants import DEFAULT_CHUNK_SIZE
from common.exceptions import (
    AmbiguousResultError,
    ChecksumMismatchError,
    InvalidChunkSizeError,
    InvalidPathError,
    MalformedMetadataError,
    NotFoundError,
    StorageIOError,
)
from common.keys import KeySpace
from common.protocol import Encoding, Sample
from common.transport import Transport
from common.types import FileMetadata, chunk_count

logger = logging.getLogger(__name__)


class CDNClient:
    """
    Uploads files as chunk + metadata publications and downloads them back.

    Every call is sequential and stops at the first error. Nothing is
    retried and nothing already published is rolled back.
    """

    def __init__(
        self,
        transport: Transport,
        key_space: Optional[KeySpace] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        query_timeout: Optional[float] = None,
        verify_checksum: bool = True
    ):
        """
        Initialize client.

        Args:
            transport: Key/value transport to publish and query on
            key_space: Key layout; defaults to the standard root
            chunk_size: Bytes per chunk for uploads
            query_timeout: Seconds to wait for query replies; None waits indefinitely
            verify_checksum: Check downloaded files against the published checksum

        Raises:
            InvalidChunkSizeError: If chunk_size is not positive or exceeds the transport payload limit
        """
        if chunk_size <= 0:
            raise InvalidChunkSizeError(f"chunk_size must be positive, got {chunk_size}")
        limit = transport.max_payload_bytes
        if limit is not None and chunk_size > limit:
            raise InvalidChunkSizeError(
                f"chunk_size {chunk_size} exceeds the {limit} bytes one transport message can carry"
            )
        self.transport = transport
        self.key_space = key_space or KeySpace()
        self.chunk_size = chunk_size
        self.query_timeout = query_timeout
        self.verify_checksum = verify_checksum

    async def upload(self, file_path: Union[str, Path], resource_name: str) -> str:
        """
        Publish a file under ``resource_name``.

        All chunks are published first; the metadata record goes last and
        marks the upload as complete for downloaders.

        Args:
            file_path: Local file to upload
            resource_name: Logical name, may contain '/'

        Returns:
            Key the metadata record was published at

        Raises:
            InvalidPathError: If the path has no file name
            MalformedKeyError: If the resource name is empty
            StorageIOError: If the file cannot be stat'ed or read
            TransportError: If a publication fails
        """
        file_path = Path(file_path)
        filename = file_path.name
        if not filename:
            raise InvalidPathError(f"The path is not a file path {file_path}")
        metadata_key = self.key_space.metadata_key(resource_name)

        checksum = compute_file_checksum(file_path)
        size = file_size(file_path)
        chunks = chunk_count(size, self.chunk_size)

        metadata = FileMetadata(
            filename=filename,
            checksum=checksum,
            chunk_size=self.chunk_size,
            chunks=chunks,
            resource_name=resource_name,
            size=size,
        )
        logger.info(f"Uploading {file_path} as {resource_name!r}: size={size}, chunks={chunks}")

        for index in range(chunks):
            data = read_chunk(file_path, index, self.chunk_size)
            key = self.key_space.chunk_key(resource_name, index)
            await self.transport.publish(key, data, Encoding.OCTET_STREAM)
            logger.debug(f"Published chunk {index}/{chunks} ({len(data)} bytes) at {key}")

        await self.transport.publish(metadata_key, metadata.serialize().encode('utf-8'), Encoding.JSON)
        logger.info(f"File uploaded to {metadata_key}")
        return metadata_key

    async def get_metadata(self, resource_name: str) -> FileMetadata:
        """
        Fetch the metadata record of a resource.

        Raises:
            NotFoundError: If nobody replies
            AmbiguousResultError: If more than one reply arrives
            MalformedMetadataError: If the reply is not a JSON metadata record
        """
        selector = self.key_space.metadata_key(resource_name)
        sample = await self._query_one(selector, resource_name)
        if sample.encoding != Encoding.JSON:
            raise MalformedMetadataError(
                f"Metadata is not correctly formatted {resource_name!r} - encoding {sample.encoding!r}"
            )
        return FileMetadata.deserialize(sample.payload)

    async def get_chunk(self, resource_name: str, index: int) -> bytes:
        """
        Fetch one chunk of a resource.

        Raises:
            NotFoundError: If nobody replies
            AmbiguousResultError: If more than one reply arrives
            MalformedMetadataError: If the reply is not tagged as binary
        """
        selector = self.key_space.chunk_key(resource_name, index)
        sample = await self._query_one(selector, resource_name)
        if sample.encoding != Encoding.OCTET_STREAM:
            raise MalformedMetadataError(
                f"File data format is not correctly formatted {resource_name!r} "
                f"chunk {index} - encoding {sample.encoding!r}"
            )
        return sample.payload

    async def download(self, resource_name: str, destination: Union[str, Path]) -> Path:
        """
        Reassemble a resource into ``destination``.

        The destination is pre-sized from the metadata and every chunk is
        written at its own offset.

        Args:
            resource_name: Logical name used at upload
            destination: Local file path to create or overwrite

        Returns:
            The destination path

        Raises:
            InvalidPathError: If the destination has no file name
            NotFoundError, AmbiguousResultError, MalformedMetadataError: On query failures
            ChunkOutOfRangeError: If a chunk does not fit the announced size
            ChecksumMismatchError: If verification is on and the content differs
            StorageIOError: If the destination cannot be written
        """
        destination = Path(destination)
        if not destination.name:
            raise InvalidPathError(f"The path is not a file path {destination}")

        metadata = await self.get_metadata(resource_name)
        logger.info(
            f"Downloading {resource_name!r} to {destination}: size={metadata.size}, chunks={metadata.chunks}"
        )

        handle = allocate_destination(destination, metadata.size)
        try:
            for index in range(metadata.chunks):
                data = await self.get_chunk(resource_name, index)
                write_chunk_at(handle, index, metadata.chunk_size, data)
                logger.debug(f"Wrote chunk {index}/{metadata.chunks} ({len(data)} bytes)")
            handle.flush()
        except OSError as e:
            raise StorageIOError(f"Unable to write {destination}: {e}") from e
        finally:
            handle.close()

        if self.verify_checksum:
            actual = compute_file_checksum(destination)
            if not checksums_match(actual, metadata.checksum):
                raise ChecksumMismatchError(
                    f"Downloaded {resource_name!r} has checksum {actual}, expected {metadata.checksum}"
                )

        logger.info(f"File downloaded to: {destination}")
        return destination

    async def _query_one(self, selector: str, resource_name: str) -> Sample:
        replies: List[Sample] = await self.transport.query(selector, timeout=self.query_timeout)
        if not replies:
            raise NotFoundError(f"File not found {resource_name!r} ({selector})")
        if len(replies) > 1:
            raise AmbiguousResultError(
                f"Got {len(replies)} responses for {selector}, expected exactly one"
            )
        return replies[0]
