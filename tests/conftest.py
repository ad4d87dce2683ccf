from __future__ import annotations

import logging
import os

import pytest

from cos_upload.common.config import MiB, Settings, get_settings
from tests.services.mock_storage import MockStorageClient

ENV_KEYS = (
    "TENCENT_SECRET_ID",
    "TENCENT_SECRET_KEY",
    "TENCENT_COS_REGION",
    "TENCENT_COS_BUCKET",
    "COS_ENDPOINT_URL",
    "COS_ADDRESSING_STYLE",
    "COS_MULTIPART_THRESHOLD_BYTES",
    "COS_PART_SIZE_BYTES",
    "COS_MAX_CONCURRENCY",
    "COS_CONNECT_TIMEOUT",
    "COS_READ_TIMEOUT",
    "COS_MAX_ATTEMPTS",
    "ENABLE_METRICS",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the developer's environment and .env file out of the tests."""
    for key in ENV_KEYS:
        # setenv first so teardown also removes values a .env file loaded
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    package = logging.getLogger("cos_upload")
    saved = (root.handlers[:], root.level, package.handlers[:], package.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    package.handlers[:] = saved[2]
    package.setLevel(saved[3])


@pytest.fixture()
def settings() -> Settings:
    return Settings.new(
        "test-id",
        "test-secret",
        "ap-guangzhou",
        "test-bucket-1250000000",
        MULTIPART_THRESHOLD_BYTES=1 * MiB,
        PART_SIZE_BYTES=1 * MiB,
        MAX_CONCURRENCY=3,
        ENABLE_METRICS=False,
    )


@pytest.fixture()
def mock_storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture()
def make_file(tmp_path):
    """Write a file of ``size`` deterministic bytes and return its path."""

    def _make(name: str, size: int) -> str:
        path = tmp_path / name
        pattern = bytes(range(256))
        data = (pattern * (size // len(pattern) + 1))[:size]
        path.write_bytes(data)
        return os.fspath(path)

    return _make
