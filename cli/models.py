"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal, Union


@dataclass(frozen=True)
class UploadCommand:
    """Upload a local file under a resource name."""

    file_path: str
    resource_name: str
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class DownloadCommand:
    """Download a resource into a local file."""

    resource_name: str
    destination_path: str
    command: Literal["download"] = "download"


CommandRequest = Union[UploadCommand, DownloadCommand]
