"""Tests for upload sources."""

from __future__ import annotations

import io
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from cos_upload.infra.storage.client import StorageError
from cos_upload.services.sources import (
    DEFAULT_CONTENT_TYPE,
    HandleSource,
    PathSource,
    open_source,
)


@pytest.fixture()
def data() -> bytes:
    return bytes(range(256)) * 8


class TestPathSource:
    def test_reads_ranges(self, tmp_path, data):
        path = tmp_path / "report.pdf"
        path.write_bytes(data)
        source = PathSource(path)

        assert source.size == len(data)
        assert source.read_range(0, 10) == data[:10]
        assert source.read_range(1000, 48) == data[1000:1048]

    def test_concurrent_reads_do_not_interfere(self, tmp_path, data):
        path = tmp_path / "blob.bin"
        path.write_bytes(data)
        source = PathSource(path)
        ranges = [(offset, 64) for offset in range(0, len(data), 64)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            chunks = list(pool.map(lambda r: source.read_range(*r), ranges))

        assert b"".join(chunks) == data

    def test_open_body_streams_whole_file(self, tmp_path, data):
        path = tmp_path / "blob.bin"
        path.write_bytes(data)

        with PathSource(path).open_body() as body:
            assert body.read() == data

    def test_missing_file(self, tmp_path):
        with pytest.raises(StorageError, match="Cannot read"):
            PathSource(tmp_path / "missing.txt")

    def test_directory_is_rejected(self, tmp_path):
        with pytest.raises(StorageError, match="Not a regular file"):
            PathSource(tmp_path)

    def test_short_read_is_reported(self, tmp_path, data):
        path = tmp_path / "blob.bin"
        path.write_bytes(data)
        source = PathSource(path)
        path.write_bytes(data[:100])

        with pytest.raises(StorageError, match="Short read"):
            source.read_range(64, 64)

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("photo.png", "image/png"),
            ("notes.txt", "text/plain"),
            ("archive.unknownext", DEFAULT_CONTENT_TYPE),
            ("no_extension", DEFAULT_CONTENT_TYPE),
        ],
    )
    def test_guess_content_type(self, tmp_path, name, expected):
        path = tmp_path / name
        path.write_bytes(b"x")

        assert PathSource(path).guess_content_type() == expected


class TestHandleSource:
    def test_real_file_handle_uses_offsets(self, tmp_path, data):
        path = tmp_path / "clip.mp4"
        path.write_bytes(data)
        with path.open("rb") as fh:
            fh.seek(500)
            source = HandleSource(fh)

            assert source.size == len(data)
            assert source.name == "clip.mp4"
            assert source.read_range(0, 16) == data[:16]
            assert fh.tell() == 500

    def test_in_memory_handle(self, data):
        handle = io.BytesIO(data)
        handle.seek(10)
        source = HandleSource(handle)

        assert source.size == len(data)
        assert source.name is None
        assert source.guess_content_type() == DEFAULT_CONTENT_TYPE
        assert source.read_range(256, 4) == data[256:260]

    def test_in_memory_concurrent_reads(self, data):
        source = HandleSource(io.BytesIO(data))
        ranges = [(offset, 32) for offset in range(0, len(data), 32)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            chunks = list(pool.map(lambda r: source.read_range(*r), ranges))

        assert b"".join(chunks) == data

    def test_open_body_starts_at_zero(self, data):
        handle = io.BytesIO(data)
        handle.seek(100)

        with HandleSource(handle).open_body() as body:
            assert body.read() == data

    def test_pipe_is_rejected_instead_of_sized_as_empty(self):
        read_fd, write_fd = os.pipe()
        os.write(write_fd, b"x" * 1000)
        os.close(write_fd)

        with os.fdopen(read_fd, "rb") as fh:
            with pytest.raises(StorageError, match="not seekable"):
                HandleSource(fh)


class TestOpenSource:
    def test_dispatches_on_type(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"abc")

        assert isinstance(open_source(str(path)), PathSource)
        assert isinstance(open_source(Path(path)), PathSource)
        assert isinstance(open_source(io.BytesIO(b"abc")), HandleSource)

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            open_source(42)  # type: ignore[arg-type]
