"""Configuration management for the CDN CLI."""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from common.constants import BROKER_PORT, DEFAULT_CHUNK_SIZE, DEFAULT_ROOT

logger = logging.getLogger(__name__)

# Environment variables that take precedence over the file, applied at load time.
ENV_OVERRIDES = {
    'CDN_BROKER_HOST': ('broker_host', str),
    'CDN_BROKER_PORT': ('broker_port', int),
    'CDN_ROOT': ('root', str),
}


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "broker_host": "localhost",
        "broker_port": BROKER_PORT,
        "root": DEFAULT_ROOT,
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "query_timeout": None,
        "verify_checksum": True,
        "max_retries": 0,
        "retry_backoff_multiplier": 2,
    }

    def __init__(self, config_path: Path):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.cdn/config.json)
        """
        self.config_path = Path(config_path)
        self.data = self._load()
        self._apply_env_overrides()

    def _load(self) -> dict:
        """
        Read the config file, writing one with defaults on first use.

        Returns:
            Configuration dictionary (defaults merged with file values)
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.cdn' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        config = dict(self.DEFAULT_CONFIG)
        if not self.config_path.exists():
            self.data = config
            self.save()
            return config

        try:
            with open(self.config_path, 'r') as f:
                stored = json.load(f)
            if not isinstance(stored, dict):
                raise ValueError("top-level value is not an object")
        except (ValueError, OSError) as e:
            if self._quarantine(e):
                self.data = config
                self.save()
            return config

        config.update(stored)
        return config

    def _quarantine(self, error: Exception) -> bool:
        backup_path = self.config_path.with_suffix('.json.bak')
        try:
            shutil.move(str(self.config_path), str(backup_path))
        except OSError as e:
            logger.warning(f"Unreadable config {self.config_path} ({error}), could not back it up: {e}")
            return False
        logger.warning(f"Unreadable config {self.config_path} ({error}), moved to {backup_path}, using defaults")
        return True

    def _apply_env_overrides(self) -> None:
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.data[key] = cast(value)

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save config {self.config_path}: {e}")

    def get_broker_address(self) -> str:
        """
        Get broker address.

        Returns:
            Address string (e.g., "localhost:7447")
        """
        return f"{self.data['broker_host']}:{self.data['broker_port']}"

    def get_root(self) -> str:
        return self.data['root']

    def get_chunk_size(self) -> int:
        return int(self.data['chunk_size'])

    def get_query_timeout(self) -> Optional[float]:
        """
        Get query timeout in seconds.

        Returns:
            Timeout value in seconds, or None to wait indefinitely
        """
        timeout = self.data.get('query_timeout')
        return float(timeout) if timeout is not None else None

    def get_verify_checksum(self) -> bool:
        return bool(self.data['verify_checksum'])

    def get_retry_config(self) -> dict:
        return {
            'max_retries': int(self.data['max_retries']),
            'retry_backoff_multiplier': self.data['retry_backoff_multiplier'],
        }
