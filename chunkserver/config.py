"""Configuration loading for the chunkserver: JSON file plus environment overrides."""

import json
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ValidationError, field_validator

from common.constants import BROKER_PORT, DEFAULT_CHUNKS_DIR, DEFAULT_ROOT
from common.exceptions import CDNException
from common.keys import KeySpace


class ConfigError(CDNException):
    """
    Raised when the server configuration is missing or invalid.
    """
    pass


class ServerConfig(BaseModel):
    """Settings the chunkserver needs at startup."""
    chunks_dir: Path = Path(DEFAULT_CHUNKS_DIR)
    resource_space: str = f"{DEFAULT_ROOT}/**"
    broker_address: str = f"localhost:{BROKER_PORT}"

    @field_validator('resource_space')
    @classmethod
    def _check_resource_space(cls, value: str) -> str:
        if not value.endswith('/**'):
            raise ValueError(f"resource_space must end with '/**', got {value!r}")
        try:
            KeySpace.from_resource_space(value)
        except CDNException as e:
            raise ValueError(str(e)) from e
        return value

    def key_space(self) -> KeySpace:
        return KeySpace.from_resource_space(self.resource_space)


ENV_OVERRIDES = {
    'CDN_CHUNKS_DIR': 'chunks_dir',
    'CDN_RESOURCE_SPACE': 'resource_space',
    'CDN_BROKER_ADDRESS': 'broker_address',
}


def load_server_config(config_path: Optional[Union[str, Path]] = None) -> ServerConfig:
    """
    Load server configuration.

    Args:
        config_path: Optional JSON file with any of chunks_dir, resource_space, broker_address

    Returns:
        Validated ServerConfig; environment variables override file values

    Raises:
        ConfigError: If the file cannot be read or the settings are invalid
    """
    data = {}
    if config_path is not None:
        try:
            with open(config_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Unable to read server config {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Server config {config_path} must be a JSON object")

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[field_name] = value

    try:
        return ServerConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid server config: {e}") from e
