"""Unit tests for the hashed shard directory layout."""

import pytest

from common.checksum import hash_path
from common.exceptions import NotFoundError


def test_paths_use_hashed_directory(store, chunks_dir):
    shard = chunks_dir / hash_path('music/song.mp3')

    assert store.shard_dir('music/song.mp3') == shard
    assert store.chunk_path('music/song.mp3', 12) == shard / '12'
    assert store.metadata_path('music/song.mp3') == shard / 'metadata'


def test_write_creates_shard_on_demand(store):
    assert not store.shard_dir('a').exists()

    store.write_chunk('a', 0, b'bytes')

    assert store.read_chunk('a', 0) == b'bytes'


def test_metadata_stored_verbatim(store):
    raw = b'{"filename": "x", "extra": 1}'

    store.write_metadata('a', raw)

    assert store.read_metadata('a') == raw


def test_overwrite_leaves_no_temp_files(store):
    store.write_chunk('a', 0, b'first')
    store.write_chunk('a', 0, b'second')

    assert store.read_chunk('a', 0) == b'second'
    assert [p.name for p in store.shard_dir('a').iterdir()] == ['0']


def test_missing_artifacts_raise_not_found(store):
    store.write_chunk('a', 0, b'x')

    with pytest.raises(NotFoundError):
        store.read_chunk('a', 1)
    with pytest.raises(NotFoundError):
        store.read_metadata('a')
    with pytest.raises(NotFoundError):
        store.read_chunk('b', 0)


def test_distinct_names_do_not_collide(store):
    store.write_chunk('dir/a', 0, b'one')
    store.write_chunk('dir_a', 0, b'two')

    assert store.read_chunk('dir/a', 0) == b'one'
    assert store.read_chunk('dir_a', 0) == b'two'
