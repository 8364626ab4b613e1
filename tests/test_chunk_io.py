"""Unit tests for byte-range chunk I/O."""

import pytest

from common.chunk_io import (
    allocate_destination,
    ensure_directory,
    read_chunk,
    read_file_bytes,
    write_chunk_at,
    write_file_atomic,
)
from common.exceptions import ChunkOutOfRangeError, InvalidPathError, StorageIOError


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / 'source.bin'
    path.write_bytes(bytes(range(256)) * 40)  # 10240 bytes
    return path


class TestReadChunk:
    """Test reading chunk slices from a source file."""

    def test_reads_full_chunk(self, source_file):
        data = read_chunk(source_file, 1, 4096)
        assert data == source_file.read_bytes()[4096:8192]

    def test_last_chunk_is_short(self, source_file):
        data = read_chunk(source_file, 2, 4096)
        assert len(data) == 10240 - 8192

    def test_offset_at_end_is_empty(self, source_file):
        assert read_chunk(source_file, 5, 2048) == b''

    def test_offset_past_end_raises(self, source_file):
        with pytest.raises(ChunkOutOfRangeError):
            read_chunk(source_file, 6, 2048)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(StorageIOError):
            read_chunk(tmp_path / 'missing.bin', 0, 1024)


class TestDestinationWrites:
    """Test pre-sizing and positional writes."""

    def test_allocate_presizes_file(self, tmp_path):
        path = tmp_path / 'out.bin'
        with allocate_destination(path, 5000):
            pass
        assert path.stat().st_size == 5000

    def test_allocate_truncates_existing_file(self, tmp_path):
        path = tmp_path / 'out.bin'
        path.write_bytes(b'x' * 100)
        with allocate_destination(path, 10):
            pass
        assert path.read_bytes() == b'\x00' * 10

    def test_allocate_into_missing_directory_fails(self, tmp_path):
        with pytest.raises(StorageIOError):
            allocate_destination(tmp_path / 'missing' / 'out.bin', 10)

    def test_allocate_without_filename_fails(self):
        with pytest.raises(InvalidPathError):
            allocate_destination('', 10)

    def test_out_of_order_writes_reassemble(self, tmp_path, source_file):
        content = source_file.read_bytes()
        path = tmp_path / 'out.bin'

        with allocate_destination(path, len(content)) as handle:
            for index in (2, 0, 1):
                write_chunk_at(handle, index, 4096, read_chunk(source_file, index, 4096))

        assert path.read_bytes() == content

    def test_write_past_allocation_fails(self, tmp_path):
        path = tmp_path / 'out.bin'
        with allocate_destination(path, 10) as handle:
            with pytest.raises(ChunkOutOfRangeError):
                write_chunk_at(handle, 1, 8, b'12345678')
        assert path.stat().st_size == 10

    def test_empty_trailing_chunk_write(self, tmp_path):
        path = tmp_path / 'out.bin'
        with allocate_destination(path, 8) as handle:
            write_chunk_at(handle, 0, 8, b'abcdefgh')
            write_chunk_at(handle, 1, 8, b'')
        assert path.read_bytes() == b'abcdefgh'


class TestFileHelpers:
    """Test directory creation and whole-file helpers."""

    def test_ensure_directory_is_idempotent(self, tmp_path):
        target = tmp_path / 'a' / 'b'
        ensure_directory(target)
        ensure_directory(target)
        assert target.is_dir()

    def test_ensure_directory_over_file_fails(self, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_bytes(b'')
        with pytest.raises(StorageIOError):
            ensure_directory(blocker / 'sub')

    def test_atomic_write_replaces_content(self, tmp_path):
        path = tmp_path / 'artifact'
        write_file_atomic(path, b'first')
        write_file_atomic(path, b'second')

        assert path.read_bytes() == b'second'
        assert [p.name for p in tmp_path.iterdir()] == ['artifact']

    def test_read_missing_file_raises_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_file_bytes(tmp_path / 'missing')
