"""Upload facade.

``Uploader`` is the public entry point: it sizes the file, asks the planner
for a strategy, and runs either a single PUT or a multipart session. It
also exposes the object admin operations (head, delete), which are single
requests with no orchestration.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Mapping

from cos_upload.common.config import Settings, get_settings
from cos_upload.infra.observability.metrics import UPLOAD_DURATION, UPLOADS
from cos_upload.infra.storage.client import ObjectHead, StorageClient
from cos_upload.infra.storage.s3_client import S3StorageClient
from cos_upload.services.multipart import MultipartOrchestrator
from cos_upload.services.planning import UploadPlan, UploadStrategy, plan_upload
from cos_upload.services.sources import FileRef, FileSource, open_source

logger = logging.getLogger(__name__)

Metadata = Mapping[str, str]


def _normalize_metadata(metadata: Metadata | None) -> dict[str, str]:
    """Validate user metadata; each entry becomes one header."""
    if not metadata:
        return {}
    normalized: dict[str, str] = {}
    seen: dict[str, str] = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not key.strip():
            raise ValueError("Metadata keys must be non-empty strings")
        if not isinstance(value, str):
            raise ValueError(f"Metadata value for {key!r} must be a string")
        name = key.strip()
        folded = name.lower()
        if folded in seen:
            raise ValueError(
                f"Metadata keys {seen[folded]!r} and {key!r} map to the same header"
            )
        seen[folded] = key
        normalized[name] = value
    return normalized


def _ensure_object_key(object_key: str) -> str:
    key = (object_key or "").lstrip("/")
    if not key:
        raise ValueError("object_key must not be empty")
    return key


class Uploader:
    """Uploads local files to a COS bucket and manages uploaded objects."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        storage_client: StorageClient | None = None,
    ) -> None:
        self._settings = (settings or get_settings()).validate()
        self._storage = storage_client or self._build_storage_client(self._settings)

    @staticmethod
    def _build_storage_client(settings: Settings) -> StorageClient:
        return S3StorageClient(settings=settings)

    @property
    def settings(self) -> Settings:
        return self._settings

    def plan_for(self, total_size: int) -> UploadPlan:
        return plan_upload(
            total_size,
            threshold=self._settings.MULTIPART_THRESHOLD_BYTES,
            part_size=self._settings.PART_SIZE_BYTES,
        )

    async def upload(
        self,
        file: FileRef,
        object_key: str,
        metadata: Metadata | None = None,
        *,
        content_type: str | None = None,
    ) -> str:
        """Upload ``file`` under ``object_key`` and return the object URL.

        Files up to the multipart threshold go out in one request; larger
        ones are split into parts uploaded concurrently. A URL is returned
        only after the remote confirmed the PUT or the multipart completion.

        Args:
            file: Path to a local file, or an open binary file object.
            object_key: Destination key in the bucket.
            metadata: User metadata, one header per entry.
            content_type: MIME type; guessed from the file name if omitted.

        Raises:
            StorageError: Any typed storage failure; IncompleteUploadError
                when a multipart session had to be abandoned.
        """
        key = _ensure_object_key(object_key)
        headers = _normalize_metadata(metadata)
        source = open_source(file)
        plan = self.plan_for(source.size)
        content_type = content_type or source.guess_content_type()

        started = time.perf_counter()
        try:
            if plan.strategy is UploadStrategy.SIMPLE:
                await self._simple_upload(source, key, headers, content_type)
            else:
                await self._multipart_upload(source, key, plan, headers, content_type)
        except Exception as exc:
            self._observe(plan, "failed", started)
            logger.warning(
                "upload_failed key=%s strategy=%s size=%s error=%s",
                key,
                plan.strategy.value,
                plan.total_size,
                exc,
            )
            raise
        self._observe(plan, "succeeded", started)

        url = self._settings.object_url(key)
        logger.info(
            "upload_succeeded key=%s strategy=%s size=%s",
            key,
            plan.strategy.value,
            plan.total_size,
            extra={
                "extra": {
                    "object_key": key,
                    "strategy": plan.strategy.value,
                    "size_bytes": plan.total_size,
                    "url": url,
                }
            },
        )
        return url

    upload_file = upload

    async def _simple_upload(
        self,
        source: FileSource,
        object_key: str,
        metadata: dict[str, str],
        content_type: str,
    ) -> None:
        def _put() -> None:
            with source.open_body() as body:
                self._storage.put_object(
                    bucket=str(self._settings.BUCKET),
                    object_key=object_key,
                    body=body,
                    content_length=source.size,
                    content_type=content_type,
                    metadata=metadata or None,
                )

        await asyncio.to_thread(_put)

    async def _multipart_upload(
        self,
        source: FileSource,
        object_key: str,
        plan: UploadPlan,
        metadata: dict[str, str],
        content_type: str,
    ) -> None:
        orchestrator = MultipartOrchestrator(
            self._storage,
            bucket=str(self._settings.BUCKET),
            object_key=object_key,
            source=source,
            plan=plan,
            content_type=content_type,
            metadata=metadata,
            max_concurrency=self._settings.MAX_CONCURRENCY,
            record_metrics=self._settings.ENABLE_METRICS,
        )
        await orchestrator.run()

    async def head(self, object_key: str) -> ObjectHead:
        """Fetch an object's metadata.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        return await asyncio.to_thread(
            self._storage.head_object,
            bucket=str(self._settings.BUCKET),
            object_key=_ensure_object_key(object_key),
        )

    get_object_metadata = head

    async def delete(self, object_key: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the remote reports the key as missing.
                Services that answer 204 for absent keys make repeated
                deletes succeed instead.
        """
        key = _ensure_object_key(object_key)
        await asyncio.to_thread(
            self._storage.delete_object,
            bucket=str(self._settings.BUCKET),
            object_key=key,
        )
        logger.info("object_deleted key=%s", key)

    delete_object = delete

    def upload_sync(
        self,
        file: FileRef,
        object_key: str,
        metadata: Metadata | None = None,
        *,
        content_type: str | None = None,
    ) -> str:
        return asyncio.run(
            self.upload(file, object_key, metadata, content_type=content_type)
        )

    def head_sync(self, object_key: str) -> ObjectHead:
        return asyncio.run(self.head(object_key))

    def delete_sync(self, object_key: str) -> None:
        asyncio.run(self.delete(object_key))

    def _observe(self, plan: UploadPlan, outcome: str, started: float) -> None:
        if not self._settings.ENABLE_METRICS:
            return
        UPLOADS.labels(strategy=plan.strategy.value, outcome=outcome).inc()
        UPLOAD_DURATION.labels(strategy=plan.strategy.value).observe(
            time.perf_counter() - started
        )
