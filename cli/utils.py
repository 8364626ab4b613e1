"""Utility functions for CLI operations."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from common.exceptions import (
    AmbiguousResultError,
    ChecksumMismatchError,
    InvalidChunkSizeError,
    InvalidPathError,
    MalformedKeyError,
    MalformedMetadataError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Failures that another attempt cannot fix.
NON_RETRYABLE_ERRORS = (
    InvalidPathError,
    MalformedKeyError,
    MalformedMetadataError,
    AmbiguousResultError,
    ChecksumMismatchError,
)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 0,
    backoff_multiplier: float = 2,
    description: str = "operation"
) -> T:
    """
    Run an async operation, retrying whole attempts with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory; each attempt calls it anew
        max_retries: Extra attempts after the first failure (0 disables retries)
        backoff_multiplier: Delay before retry n is backoff_multiplier ** n seconds
        description: Label used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        The last error when every attempt fails, or a non-retryable error immediately
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except NON_RETRYABLE_ERRORS:
            raise
        except Exception as e:
            if attempt >= max_retries:
                raise
            delay = backoff_multiplier ** attempt
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{max_retries + 1}): {e}, retrying in {delay}s"
            )
            await asyncio.sleep(delay)
            attempt += 1


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"
