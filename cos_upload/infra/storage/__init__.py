"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
with a boto3 implementation for Tencent COS and other S3-compatible services.
"""

from .client import (
    CompletedPart,
    ConfigError,
    IncompleteUploadError,
    InvalidPlanError,
    MultipartUpload,
    NoSuchUploadError,
    ObjectHead,
    ObjectNotFoundError,
    PutResult,
    RemoteServiceError,
    SessionStateError,
    StorageClient,
    StorageError,
    TransportError,
)

__all__ = [
    "CompletedPart",
    "ConfigError",
    "IncompleteUploadError",
    "InvalidPlanError",
    "MultipartUpload",
    "NoSuchUploadError",
    "ObjectHead",
    "ObjectNotFoundError",
    "PutResult",
    "RemoteServiceError",
    "SessionStateError",
    "StorageClient",
    "StorageError",
    "TransportError",
]
