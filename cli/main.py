"""CLI entry point."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from common.exceptions import CDNException
from common.logging_config import setup_logging
from cli.commands import DEFAULT_CONFIG_PATH, execute
from cli.config import Config
from cli.models import CommandRequest, DownloadCommand, UploadCommand


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='cdn', description="Upload and download files through the CDN key space")
    parser.add_argument('--debug', action='store_true', help="Enable debug logging")
    parser.add_argument('--config', type=Path, default=DEFAULT_CONFIG_PATH, help="Path to CLI config JSON")
    subparsers = parser.add_subparsers(dest='command', required=True)

    upload = subparsers.add_parser('upload', help="Upload a file")
    upload.add_argument('file_path', help="Path of the file to be shared")
    upload.add_argument('resource_name', help="Resource name for the file")

    download = subparsers.add_parser('download', help="Download a file")
    download.add_argument('resource_name', help="Resource name of the file")
    download.add_argument('destination_path', help="Path of the destination file")

    return parser


def parse_command(argv: Optional[List[str]] = None) -> tuple:
    """
    Parse command line arguments.

    Returns:
        Tuple of (CommandRequest, parsed namespace)
    """
    args = build_parser().parse_args(argv)
    if args.command == 'upload':
        cmd: CommandRequest = UploadCommand(file_path=args.file_path, resource_name=args.resource_name)
    else:
        cmd = DownloadCommand(resource_name=args.resource_name, destination_path=args.destination_path)
    return cmd, args


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for CLI."""
    cmd, args = parse_command(argv)
    logger = setup_logging('cli', log_level='DEBUG' if args.debug else None)
    logger.debug(f"Args: {args}")

    try:
        message = asyncio.run(execute(cmd, Config(args.config)))
    except CDNException as e:
        logger.error(f"{cmd.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(message)


if __name__ == "__main__":
    main()
