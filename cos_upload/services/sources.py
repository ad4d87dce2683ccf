"""Readable upload sources.

Parts are read concurrently from worker threads, so a source never relies
on a shared file cursor: paths are reopened per read and real file
descriptors are read with ``os.pread``.
"""

from __future__ import annotations

import io
import mimetypes
import os
import stat
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from cos_upload.infra.storage.client import StorageError

FileRef = Union[str, "os.PathLike[str]", BinaryIO]

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class FileSource:
    """Common interface for the things ``Uploader.upload`` accepts."""

    name: str | None = None

    @property
    def size(self) -> int:
        raise NotImplementedError

    def read_range(self, offset: int, length: int) -> bytes:
        raise NotImplementedError

    @contextmanager
    def open_body(self) -> Iterator[BinaryIO]:
        """Yield a stream of the whole content, positioned at byte 0."""
        yield io.BytesIO(self.read_range(0, self.size))

    def guess_content_type(self) -> str:
        if self.name:
            guessed, _ = mimetypes.guess_type(self.name)
            if guessed:
                return guessed
        return DEFAULT_CONTENT_TYPE


def _check_length(data: bytes, offset: int, length: int) -> bytes:
    if len(data) != length:
        raise StorageError(
            f"Short read at offset {offset}: expected {length} bytes, got "
            f"{len(data)}; the file changed during upload"
        )
    return data


class PathSource(FileSource):
    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self.name = self.path.name
        try:
            self._size = self.path.stat().st_size
        except OSError as exc:
            raise StorageError(f"Cannot read {self.path}: {exc}") from exc
        if not self.path.is_file():
            raise StorageError(f"Not a regular file: {self.path}")

    @property
    def size(self) -> int:
        return self._size

    def read_range(self, offset: int, length: int) -> bytes:
        with self.path.open("rb") as fh:
            fh.seek(offset)
            return _check_length(fh.read(length), offset, length)

    @contextmanager
    def open_body(self) -> Iterator[BinaryIO]:
        with self.path.open("rb") as fh:
            yield fh


class HandleSource(FileSource):
    """An already open binary file object.

    The whole object is uploaded from byte 0 regardless of its current
    position. Regular files are read with ``os.pread``; other seekable
    objects (``BytesIO`` and the like) with seek+read pairs under a lock.
    Pipes, sockets and other streams that cannot be rewound are rejected,
    since their size is unknown up front.
    """

    def __init__(self, handle: BinaryIO) -> None:
        self.handle = handle
        raw_name = getattr(handle, "name", None)
        self.name = os.path.basename(raw_name) if isinstance(raw_name, str) else None
        self._lock = threading.Lock()
        self._fd = self._regular_fileno(handle)
        if self._fd is not None:
            self._size = os.fstat(self._fd).st_size
            return
        if not self._seekable(handle):
            raise StorageError(
                f"Cannot upload from {self.name or type(handle).__name__}: stream is "
                "not seekable; write it to a file first"
            )
        with self._lock:
            position = handle.tell()
            self._size = handle.seek(0, io.SEEK_END)
            handle.seek(position)

    @staticmethod
    def _regular_fileno(handle: BinaryIO) -> int | None:
        if not hasattr(os, "pread"):
            return None
        try:
            fd = handle.fileno()
            mode = os.fstat(fd).st_mode
        except (AttributeError, OSError, ValueError, io.UnsupportedOperation):
            return None
        return fd if stat.S_ISREG(mode) else None

    @staticmethod
    def _seekable(handle: BinaryIO) -> bool:
        seekable = getattr(handle, "seekable", None)
        if seekable is None:
            return True
        try:
            return bool(seekable())
        except (OSError, ValueError):
            return False

    @property
    def size(self) -> int:
        return self._size

    def read_range(self, offset: int, length: int) -> bytes:
        if self._fd is not None:
            chunks: list[bytes] = []
            remaining = length
            position = offset
            while remaining > 0:
                chunk = os.pread(self._fd, remaining, position)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
                position += len(chunk)
            return _check_length(b"".join(chunks), offset, length)
        with self._lock:
            self.handle.seek(offset)
            return _check_length(self.handle.read(length), offset, length)


def open_source(file: FileRef) -> FileSource:
    if isinstance(file, FileSource):
        return file
    if isinstance(file, (str, os.PathLike)):
        return PathSource(file)
    if hasattr(file, "read") and hasattr(file, "seek"):
        return HandleSource(file)
    raise TypeError(f"Expected a path or a binary file object, got {type(file).__name__}")
