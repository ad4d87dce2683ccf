"""Translation of botocore failures into storage errors."""

from __future__ import annotations

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from cos_upload.infra.storage.client import (
    ConfigError,
    NoSuchUploadError,
    ObjectNotFoundError,
    RemoteServiceError,
    StorageError,
    TransportError,
)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
NO_SUCH_UPLOAD_CODES = frozenset({"NoSuchUpload"})


def map_client_error(action: str, exc: ClientError) -> RemoteServiceError:
    err = exc.response.get("Error", {}) or {}
    meta = exc.response.get("ResponseMetadata", {}) or {}

    code: str = str(err.get("Code", "") or "")
    message: str = err.get("Message", "") or str(exc)
    status = meta.get("HTTPStatusCode")
    status = int(status) if status is not None else None
    request_id = meta.get("RequestId")

    text = f"Failed to {action}: {code or status} {message}".rstrip()
    if code in NO_SUCH_UPLOAD_CODES:
        cls: type[RemoteServiceError] = NoSuchUploadError
    elif code in NOT_FOUND_CODES or status == 404:
        cls = ObjectNotFoundError
    else:
        cls = RemoteServiceError
    return cls(text, status=status, code=code or None, request_id=request_id)


def translate_error(action: str, exc: Exception) -> StorageError:
    """Map an exception raised by boto3 onto the storage error hierarchy."""
    if isinstance(exc, StorageError):
        return exc
    if isinstance(exc, ClientError):
        return map_client_error(action, exc)
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return ConfigError(f"Failed to {action}: {exc}")
    if isinstance(exc, BotoCoreError):
        return TransportError(f"Failed to {action}: {exc}")
    return StorageError(f"Failed to {action}: {exc}")
