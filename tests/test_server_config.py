"""Unit tests for chunkserver configuration loading."""

import json
from pathlib import Path

import pytest

from common.keys import KeySpace
from chunkserver.config import ConfigError, ServerConfig, load_server_config


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in ('CDN_CHUNKS_DIR', 'CDN_RESOURCE_SPACE', 'CDN_BROKER_ADDRESS'):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = load_server_config()

    assert config.resource_space == '/cdn/**'
    assert config.broker_address == 'localhost:7447'
    assert config.key_space() == KeySpace('/cdn')


def test_file_values(tmp_path):
    path = tmp_path / 'server.json'
    path.write_text(json.dumps({
        'chunks_dir': str(tmp_path / 'data'),
        'resource_space': '/media/**',
        'broker_address': 'broker:9000',
    }))

    config = load_server_config(path)

    assert config.chunks_dir == tmp_path / 'data'
    assert config.key_space().prefix == '/media/files/'
    assert config.broker_address == 'broker:9000'


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / 'server.json'
    path.write_text(json.dumps({'chunks_dir': '/from/file'}))
    monkeypatch.setenv('CDN_CHUNKS_DIR', '/from/env')

    assert load_server_config(path).chunks_dir == Path('/from/env')


def test_resource_space_requires_wildcard_suffix():
    with pytest.raises(ValueError):
        ServerConfig(resource_space='/cdn')


def test_invalid_env_value_is_config_error(monkeypatch):
    monkeypatch.setenv('CDN_RESOURCE_SPACE', '/cdn/*')

    with pytest.raises(ConfigError):
        load_server_config()


def test_unreadable_file_is_config_error(tmp_path):
    path = tmp_path / 'server.json'
    path.write_text('{broken')

    with pytest.raises(ConfigError):
        load_server_config(path)
    with pytest.raises(ConfigError):
        load_server_config(tmp_path / 'missing.json')


def test_non_object_file_is_config_error(tmp_path):
    path = tmp_path / 'server.json'
    path.write_text('[1, 2]')

    with pytest.raises(ConfigError):
        load_server_config(path)


def test_wildcard_root_is_config_error(monkeypatch):
    monkeypatch.setenv('CDN_RESOURCE_SPACE', '/c*n/**')

    with pytest.raises(ConfigError):
        load_server_config()
