"""Storage client protocol, data types and errors.

This module defines the interface the upload services use to talk to an
S3-compatible object store, together with the error hierarchy every
storage failure is translated into.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Mapping, Protocol, Sequence, Union


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class ConfigError(StorageError):
    """Raised when credentials, region or tuning settings are missing or invalid."""


class TransportError(StorageError):
    """Raised when a request never produced a response (connection, timeout)."""


class RemoteServiceError(StorageError):
    """Raised when the remote service answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.request_id = request_id


class ObjectNotFoundError(RemoteServiceError):
    """Raised when the addressed object does not exist."""


class NoSuchUploadError(RemoteServiceError):
    """Raised when the remote no longer knows a multipart upload_id."""


class InvalidPlanError(StorageError):
    """Raised when a file size cannot be turned into a valid upload plan."""


class SessionStateError(StorageError):
    """Raised when a multipart session is driven outside its state machine."""


class IncompleteUploadError(StorageError):
    """Raised when a multipart upload had to be abandoned.

    ``aborted`` tells whether the remote session was released. When it is
    False the abort request itself failed, ``abort_error`` holds that
    failure, and uploaded parts may linger until cleaned up by hand.
    """

    def __init__(
        self,
        message: str,
        *,
        object_key: str,
        upload_id: str,
        aborted: bool,
        cause: BaseException | None = None,
        abort_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.object_key = object_key
        self.upload_id = upload_id
        self.aborted = aborted
        self.cause = cause
        self.abort_error = abort_error

    @property
    def requires_manual_cleanup(self) -> bool:
        return not self.aborted


Body = Union[bytes, BinaryIO]


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class PutResult:
    """Result of a single-request object upload."""

    etag: str | None
    version_id: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None
    last_modified: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations are synchronous; the upload services move calls off
    the event loop. All failures surface as ``StorageError`` subclasses.
    """

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: Body,
        content_length: int,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> PutResult:
        """Upload an object in a single request.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            body: Object content, as bytes or a readable binary stream.
            content_length: Exact number of bytes in ``body``.
            content_type: MIME type of the object.
            metadata: Custom metadata to attach to the object.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            upload_id: Multipart upload ID from init_multipart_upload.
            part_number: Part number (1-based, max 10000).
            body: The part's bytes.

        Returns:
            CompletedPart carrying the ETag the remote assigned to the part.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage.

        Raises:
            ObjectNotFoundError: If the remote reports the key as missing.
            StorageError: If the operation fails.
        """
        ...
