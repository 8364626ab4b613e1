"""Whole-file checksums and resource path hashing."""

import hashlib
from pathlib import Path
from typing import Union

from common.constants import CHECKSUM_PIECE_SIZE_BYTES
from common.exceptions import StorageIOError


def hash_path(path: str) -> str:
    """
    Map a resource name to a fixed-width, filesystem-safe directory name.

    Used for shard directory naming only, never for integrity checks.

    Args:
        path: Logical resource name (may contain '/')

    Returns:
        Upper-case hexadecimal SHA-256 of the UTF-8 encoded name (64 chars)
    """
    return hashlib.sha256(path.encode('utf-8')).hexdigest().upper()


class IncrementalChecksumCalculator:
    """
    Calculate an MD5 content checksum incrementally for streamed data.

    Usage:
        calculator = IncrementalChecksumCalculator()
        calculator.update(piece1)
        calculator.update(piece2)
        checksum = calculator.finalize()
    """

    def __init__(self):
        """Initialize a new incremental checksum calculator."""
        self._hasher = hashlib.md5()
        self._finalized = False

    def update(self, data: bytes) -> None:
        """
        Update checksum with new data.

        Args:
            data: Bytes to add to checksum calculation
        """
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)

    def finalize(self) -> str:
        """
        Finalize checksum calculation and return result.

        Returns:
            Upper-case hexadecimal MD5 digest
        """
        self._finalized = True
        return self._hasher.hexdigest().upper()


def compute_file_checksum(path: Union[str, Path], piece_size: int = CHECKSUM_PIECE_SIZE_BYTES) -> str:
    """
    Compute the whole-file checksum, independent of chunking.

    Args:
        path: File to hash
        piece_size: Read size in bytes

    Returns:
        Upper-case hexadecimal MD5 digest

    Raises:
        StorageIOError: If the file cannot be opened or read
    """
    calculator = IncrementalChecksumCalculator()
    try:
        with open(path, 'rb') as f:
            while True:
                piece = f.read(piece_size)
                if not piece:
                    break
                calculator.update(piece)
    except OSError as e:
        raise StorageIOError(f"Unable to read file {path} for checksum: {e}") from e
    return calculator.finalize()


def checksums_match(actual: str, expected: str) -> bool:
    """Compare two hex digests, ignoring case."""
    return actual.lower() == expected.lower()
