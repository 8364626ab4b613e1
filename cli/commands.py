"""Command handler functions for CLI operations."""

from pathlib import Path
from typing import Optional

from common.exceptions import CDNException
from common.grpc_transport import GrpcTransport
from common.keys import KeySpace
from common.logging_config import get_logger
from cli.client import CDNClient
from cli.config import Config
from cli.models import CommandRequest, DownloadCommand, UploadCommand
from cli.utils import format_file_size, run_with_retry

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.cdn' / 'config.json'


def build_client(config: Config, transport=None) -> CDNClient:
    """
    Create a CDNClient from CLI configuration.

    Args:
        config: Configuration instance
        transport: Optional transport (testing); defaults to a broker connection

    Returns:
        CDNClient instance
    """
    if transport is None:
        transport = GrpcTransport(config.get_broker_address())
    return CDNClient(
        transport,
        key_space=KeySpace(config.get_root()),
        chunk_size=config.get_chunk_size(),
        query_timeout=config.get_query_timeout(),
        verify_checksum=config.get_verify_checksum(),
    )


async def handle_upload(cmd: UploadCommand, client: CDNClient, config: Config) -> str:
    """
    Handle 'upload' command.

    Args:
        cmd: UploadCommand with file_path and resource_name
        client: CDNClient to upload with
        config: Configuration instance (retry settings)

    Returns:
        Success message with the metadata key
    """
    logger.info(f"Executing upload command: {cmd.file_path} -> {cmd.resource_name}")
    retry = config.get_retry_config()
    key = await run_with_retry(
        lambda: client.upload(cmd.file_path, cmd.resource_name),
        max_retries=retry['max_retries'],
        backoff_multiplier=retry['retry_backoff_multiplier'],
        description=f"upload of {cmd.file_path}",
    )
    size = Path(cmd.file_path).stat().st_size
    return f"File uploaded to {key} ({format_file_size(size)})"


async def handle_download(cmd: DownloadCommand, client: CDNClient, config: Config) -> str:
    """
    Handle 'download' command.

    Args:
        cmd: DownloadCommand with resource_name and destination_path
        client: CDNClient to download with
        config: Configuration instance (retry settings)

    Returns:
        Success message with the destination path
    """
    logger.info(f"Executing download command: {cmd.resource_name} -> {cmd.destination_path}")
    retry = config.get_retry_config()
    path = await run_with_retry(
        lambda: client.download(cmd.resource_name, cmd.destination_path),
        max_retries=retry['max_retries'],
        backoff_multiplier=retry['retry_backoff_multiplier'],
        description=f"download of {cmd.resource_name}",
    )
    return f"File downloaded to: {path} ({format_file_size(path.stat().st_size)})"


async def execute(cmd: CommandRequest, config: Optional[Config] = None, transport=None) -> str:
    """
    Run one command against the broker and release the connection afterwards.

    Args:
        cmd: Parsed command
        config: Optional configuration (defaults to ~/.cdn/config.json)
        transport: Optional transport for dependency injection (testing)

    Returns:
        Result message

    Raises:
        CDNException: The terminal error of a failed upload or download
    """
    if config is None:
        config = Config(DEFAULT_CONFIG_PATH)
    client = build_client(config, transport)
    try:
        if isinstance(cmd, UploadCommand):
            return await handle_upload(cmd, client, config)
        if isinstance(cmd, DownloadCommand):
            return await handle_download(cmd, client, config)
        raise CDNException(f"Unknown command {cmd!r}")
    finally:
        await client.transport.close()
