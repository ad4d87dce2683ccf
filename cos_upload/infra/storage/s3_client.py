"""S3-compatible storage client implementation.

Tencent COS speaks the S3 protocol, so boto3 provides request signing,
HTTPS transport and the retry policy. This module only shapes requests
and translates failures.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import boto3
from botocore.config import Config

from cos_upload.infra.storage.client import (
    Body,
    CompletedPart,
    MultipartUpload,
    ObjectHead,
    PutResult,
    RemoteServiceError,
)
from cos_upload.infra.storage.errors import translate_error

if TYPE_CHECKING:
    from cos_upload.common.config import Settings

logger = logging.getLogger(__name__)


class S3StorageClient:
    """S3-compatible object storage client.

    Supports Tencent COS, AWS S3, MinIO and other S3-compatible services.
    Uses boto3 for all storage operations. boto3 clients are thread-safe,
    so one instance serves concurrent part uploads.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Validated settings with credentials and endpoint.
        """
        self._settings = settings
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": settings.ADDRESSING_STYLE},
            connect_timeout=settings.CONNECT_TIMEOUT,
            read_timeout=settings.READ_TIMEOUT,
            retries={"max_attempts": settings.MAX_ATTEMPTS, "mode": "standard"},
            max_pool_connections=max(10, settings.MAX_CONCURRENCY * 2),
            # COS rejects aws-chunked bodies with trailing checksums
            request_checksum_calculation="when_required",
            response_checksum_validation="when_required",
        )

        return boto3.client(
            "s3",
            endpoint_url=settings.resolved_endpoint_url,
            region_name=settings.REGION,
            aws_access_key_id=settings.SECRET_ID,
            aws_secret_access_key=settings.SECRET_KEY,
            config=config,
        )

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
        """Upload an object in a single request."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_key,
            "Body": body,
            "ContentLength": int(content_length),
        }
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = dict(metadata)

        try:
            response = self._client.put_object(**params)
        except Exception as exc:
            raise translate_error("put object", exc) from exc

        logger.debug("put_object key=%s size=%s", object_key, content_length)
        return PutResult(
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
        )

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = dict(metadata)

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise translate_error("create multipart upload", exc) from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise RemoteServiceError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload."""
        try:
            response = self._client.upload_part(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
                ContentLength=len(body),
            )
        except Exception as exc:
            raise translate_error(f"upload part {part_number}", exc) from exc

        etag = response.get("ETag")
        if not etag:
            raise RemoteServiceError(f"S3 response missing ETag for part {part_number}")

        return CompletedPart(part_number=int(part_number), etag=str(etag))

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise translate_error("complete multipart upload", exc) from exc

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            self._client.abort_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
            )
        except Exception as exc:
            raise translate_error("abort multipart upload", exc) from exc

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise translate_error("get object metadata", exc) from exc

        size = response.get("ContentLength")
        http_headers = (response.get("ResponseMetadata") or {}).get("HTTPHeaders") or {}
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
            metadata=dict(response.get("Metadata") or {}),
            headers={str(k).lower(): str(v) for k, v in http_headers.items()},
        )

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise translate_error("delete object", exc) from exc
