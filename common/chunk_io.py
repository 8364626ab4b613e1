"""Byte-range file I/O: chunk slices of a source file, positional writes into a pre-sized destination."""

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Union

from common.exceptions import ChunkOutOfRangeError, InvalidPathError, StorageIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def file_size(path: PathLike) -> int:
    """
    Get size of a file in bytes.

    Raises:
        StorageIOError: If the file cannot be stat'ed
    """
    try:
        return os.stat(path).st_size
    except OSError as e:
        raise StorageIOError(f"Unable to get metadata for {path}: {e}") from e


def read_chunk(path: PathLike, index: int, chunk_size: int) -> bytes:
    """
    Read chunk ``index`` of a source file.

    The chunk starts at ``index * chunk_size`` and holds at most
    ``chunk_size`` bytes. An offset equal to the file size yields an empty
    chunk (the trailing slot of the chunk count rule).

    Args:
        path: Source file
        index: 0-based chunk index
        chunk_size: Bytes per chunk

    Returns:
        Chunk bytes

    Raises:
        StorageIOError: If the file cannot be opened, seeked or read
        ChunkOutOfRangeError: If the offset lies past the end of the file
    """
    offset = index * chunk_size
    size = file_size(path)
    if index < 0 or offset > size:
        raise ChunkOutOfRangeError(
            f"Chunk {index} of {path} starts at {offset}, file size is {size}"
        )

    length = min(chunk_size, size - offset)
    logger.debug(f"Reading chunk {index} of {path}: offset={offset} length={length}")
    try:
        with open(path, 'rb') as f:
            f.seek(offset)
            data = f.read(length)
    except OSError as e:
        raise StorageIOError(f"Unable to read from file {path}: {e}") from e

    if len(data) != length:
        raise StorageIOError(
            f"Short read from {path}: expected {length} bytes at {offset}, got {len(data)}"
        )
    return data


def allocate_destination(path: PathLike, size: int) -> BinaryIO:
    """
    Create (or truncate) ``path`` and extend it to exactly ``size`` bytes.

    Chunks can then be written at their offsets in any order without
    growing the file.

    Returns:
        Open binary handle, writable and seekable; caller closes it

    Raises:
        InvalidPathError: If the path has no file name component
        StorageIOError: If the file cannot be created or resized
    """
    if not Path(path).name:
        raise InvalidPathError(f"The path is not a file path {path}")
    try:
        handle = open(path, 'w+b')
    except OSError as e:
        raise StorageIOError(f"Unable to create file {path}: {e}") from e
    try:
        handle.truncate(size)
    except OSError as e:
        handle.close()
        raise StorageIOError(f"Unable to allocate space in file {path}: {e}") from e
    return handle


def write_chunk_at(handle: BinaryIO, index: int, chunk_size: int, data: bytes) -> None:
    """
    Write ``data`` at absolute offset ``index * chunk_size`` of a pre-sized file.

    Calls for different chunks may come in any order. The handle's file
    position is shared, so calls on one handle must not run concurrently.

    Raises:
        ChunkOutOfRangeError: If the write would extend past the allocated size
        StorageIOError: If seeking or writing fails
    """
    offset = index * chunk_size
    try:
        allocated = os.fstat(handle.fileno()).st_size
    except OSError as e:
        raise StorageIOError(f"Unable to access file {handle.name}: {e}") from e
    if index < 0 or offset + len(data) > allocated:
        raise ChunkOutOfRangeError(
            f"Chunk {index} ({len(data)} bytes at {offset}) exceeds allocated size {allocated}"
        )

    logger.debug(f"Write from position {offset} to position {offset + len(data)}")
    try:
        handle.seek(offset)
        handle.write(data)
    except OSError as e:
        raise StorageIOError(f"Unable to write chunk {index} to {handle.name}: {e}") from e


def ensure_directory(path: PathLike) -> None:
    """
    Create a directory and its parents, tolerating a concurrent creator.

    Raises:
        StorageIOError: If the directory cannot be created
    """
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"Error when creating folder {path}: {e}") from e


def write_file_atomic(path: PathLike, data: bytes) -> None:
    """
    Create or replace ``path`` with ``data``.

    Content goes to a temporary file in the same directory first and is
    moved into place with ``os.replace``, so readers see either the old or
    the new file, never a partial one.

    Raises:
        StorageIOError: If the file cannot be written
    """
    path = Path(path)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StorageIOError(f"Error when writing bytes to file {path}: {e}") from e


def read_file_bytes(path: PathLike) -> bytes:
    """
    Read a whole file.

    Raises:
        FileNotFoundError: If the file does not exist
        StorageIOError: If the file exists but cannot be read
    """
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        raise
    except OSError as e:
        raise StorageIOError(f"Unable to read file {path}: {e}") from e
