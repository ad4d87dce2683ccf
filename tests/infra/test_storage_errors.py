"""Tests for botocore error translation."""

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from cos_upload.infra.storage.client import (
    ConfigError,
    NoSuchUploadError,
    ObjectNotFoundError,
    RemoteServiceError,
    StorageError,
    TransportError,
)
from cos_upload.infra.storage.errors import map_client_error, translate_error


def _client_error(code, status, request_id=None):
    meta = {"HTTPStatusCode": status}
    if request_id:
        meta["RequestId"] = request_id
    return ClientError(
        {"Error": {"Code": code, "Message": "boom"}, "ResponseMetadata": meta},
        "Operation",
    )


@pytest.mark.parametrize(
    "code, status, expected",
    [
        ("NoSuchKey", 404, ObjectNotFoundError),
        ("NotFound", 404, ObjectNotFoundError),
        ("404", 404, ObjectNotFoundError),
        ("", 404, ObjectNotFoundError),
        ("NoSuchUpload", 404, NoSuchUploadError),
        ("AccessDenied", 403, RemoteServiceError),
        ("EntityTooSmall", 400, RemoteServiceError),
        ("InternalError", 500, RemoteServiceError),
    ],
)
def test_map_client_error_classes(code, status, expected):
    err = map_client_error("do thing", _client_error(code, status, "req-9"))

    assert type(err) is expected
    assert err.status == status
    assert err.code == (code or None)
    assert err.request_id == "req-9"
    assert str(err).startswith("Failed to do thing:")


def test_part_too_small_is_a_plain_remote_error():
    err = map_client_error("complete multipart upload", _client_error("EntityTooSmall", 400))

    assert isinstance(err, RemoteServiceError)
    assert "EntityTooSmall" in str(err)


@pytest.mark.parametrize(
    "exc, expected",
    [
        (ConnectTimeoutError(endpoint_url="https://cos"), TransportError),
        (ReadTimeoutError(endpoint_url="https://cos"), TransportError),
        (PartialCredentialsError(provider="env", cred_var="secret"), ConfigError),
        (ValueError("unexpected"), StorageError),
    ],
)
def test_translate_error(exc, expected):
    err = translate_error("upload part 1", exc)

    assert type(err) is expected
    assert "Failed to upload part 1" in str(err)


def test_translate_error_keeps_storage_errors():
    original = TransportError("already typed")

    assert translate_error("anything", original) is original
