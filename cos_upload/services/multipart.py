"""Multipart upload orchestration.

The orchestrator drives one multipart session through

    UNINITIATED -> INITIATING -> UPLOADING -> COMPLETING -> DONE

and, once a session exists, through ABORTING -> ABORTED on any failure.
A failed initiate ends in FAILED: there is no session to abort yet.

Part uploads run concurrently, bounded by a semaphore. Part tasks only
return results; the orchestrator coroutine is the single writer of the
session's part map.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import warnings
from dataclasses import dataclass, field
from typing import Mapping

from cos_upload.infra.observability.metrics import ABORTS, UPLOAD_PARTS
from cos_upload.infra.storage.client import (
    CompletedPart,
    IncompleteUploadError,
    InvalidPlanError,
    NoSuchUploadError,
    SessionStateError,
    StorageClient,
)
from cos_upload.services.planning import PartDescriptor, UploadPlan, UploadStrategy
from cos_upload.services.sources import FileSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


class UploadState(str, enum.Enum):
    UNINITIATED = "uninitiated"
    INITIATING = "initiating"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    DONE = "done"
    ABORTING = "aborting"
    ABORTED = "aborted"
    FAILED = "failed"


_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.UNINITIATED: frozenset({UploadState.INITIATING}),
    UploadState.INITIATING: frozenset({UploadState.UPLOADING, UploadState.FAILED}),
    UploadState.UPLOADING: frozenset({UploadState.COMPLETING, UploadState.ABORTING}),
    UploadState.COMPLETING: frozenset({UploadState.DONE, UploadState.ABORTING}),
    UploadState.ABORTING: frozenset({UploadState.ABORTED}),
    UploadState.DONE: frozenset(),
    UploadState.ABORTED: frozenset(),
    UploadState.FAILED: frozenset(),
}


@dataclass(eq=False)
class MultipartSession:
    """Client-side view of one server-side multipart upload.

    Owned by a single orchestrator call. Exactly one of ``mark_completed``
    or ``mark_aborted`` must be called; a session garbage collected while
    still open emits a ResourceWarning.
    """

    upload_id: str
    bucket: str
    object_key: str
    descriptors: tuple[PartDescriptor, ...]
    parts: dict[int, str] = field(default_factory=dict)
    outcome: str | None = None

    @property
    def closed(self) -> bool:
        return self.outcome is not None

    @property
    def expected_part_numbers(self) -> frozenset[int]:
        return frozenset(d.part_number for d in self.descriptors)

    def record(self, part: CompletedPart) -> None:
        if self.closed:
            raise SessionStateError(
                f"Session {self.upload_id} is already {self.outcome}"
            )
        if part.part_number not in self.expected_part_numbers:
            raise SessionStateError(
                f"Part {part.part_number} is not part of upload {self.upload_id}"
            )
        if part.part_number in self.parts:
            raise SessionStateError(
                f"Part {part.part_number} was already recorded for upload {self.upload_id}"
            )
        self.parts[part.part_number] = part.etag

    def missing_parts(self) -> list[int]:
        return sorted(self.expected_part_numbers.difference(self.parts))

    def completed_parts(self) -> list[CompletedPart]:
        """Parts in ascending part_number order, ready for completion.

        Raises:
            SessionStateError: If any planned part has no recorded ETag.
        """
        missing = self.missing_parts()
        if missing:
            raise SessionStateError(
                f"Cannot complete upload {self.upload_id}: missing parts {missing}"
            )
        return [
            CompletedPart(part_number=number, etag=self.parts[number])
            for number in sorted(self.parts)
        ]

    def mark_completed(self) -> None:
        self._close("completed")

    def mark_aborted(self, *, released: bool) -> None:
        self._close("aborted" if released else "abandoned")

    def _close(self, outcome: str) -> None:
        if self.closed:
            raise SessionStateError(
                f"Session {self.upload_id} is already {self.outcome}"
            )
        self.outcome = outcome

    def __del__(self) -> None:
        if getattr(self, "outcome", "") is None:
            warnings.warn(
                f"Multipart session {self.upload_id} for {self.object_key!r} "
                "was neither completed nor aborted",
                ResourceWarning,
                source=self,
            )


class MultipartOrchestrator:
    """Runs a single multipart upload to completion or abort.

    One instance per upload call; instances are not reusable.
    """

    def __init__(
        self,
        storage: StorageClient,
        *,
        bucket: str,
        object_key: str,
        source: FileSource,
        plan: UploadPlan,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        record_metrics: bool = True,
    ) -> None:
        if plan.strategy is not UploadStrategy.MULTIPART:
            raise InvalidPlanError("MultipartOrchestrator requires a multipart plan")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._storage = storage
        self._bucket = bucket
        self._object_key = object_key
        self._source = source
        self._plan = plan
        self._content_type = content_type
        self._metadata = dict(metadata or {})
        self._max_concurrency = max_concurrency
        self._record_metrics = record_metrics
        self.state = UploadState.UNINITIATED
        self.session: MultipartSession | None = None

    def _transition(self, new_state: UploadState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Illegal multipart transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            "multipart_state key=%s %s->%s",
            self._object_key,
            self.state.value,
            new_state.value,
        )
        self.state = new_state

    async def run(self) -> MultipartSession:
        """Upload every planned part and complete the session.

        Returns:
            The completed session.

        Raises:
            StorageError: If initiating the session fails; nothing to abort.
            IncompleteUploadError: If the session was abandoned after a part
                or completion failure.
        """
        self._transition(UploadState.INITIATING)
        try:
            upload = await asyncio.to_thread(
                self._storage.init_multipart_upload,
                bucket=self._bucket,
                object_key=self._object_key,
                content_type=self._content_type,
                metadata=self._metadata or None,
            )
        except BaseException:
            self._transition(UploadState.FAILED)
            raise

        session = MultipartSession(
            upload_id=upload.upload_id,
            bucket=self._bucket,
            object_key=self._object_key,
            descriptors=self._plan.parts(),
        )
        self.session = session
        self._transition(UploadState.UPLOADING)
        logger.info(
            "multipart_initiated key=%s upload_id=%s parts=%s part_size=%s",
            self._object_key,
            session.upload_id,
            len(session.descriptors),
            self._plan.part_size,
        )

        try:
            await self._upload_parts(session)
            self._transition(UploadState.COMPLETING)
            parts = session.completed_parts()
            await asyncio.to_thread(
                self._storage.complete_multipart_upload,
                bucket=self._bucket,
                object_key=self._object_key,
                upload_id=session.upload_id,
                parts=parts,
            )
        except BaseException as exc:
            await self._abort(session, exc)
            raise

        session.mark_completed()
        self._transition(UploadState.DONE)
        logger.info(
            "multipart_completed key=%s upload_id=%s",
            self._object_key,
            session.upload_id,
        )
        return session

    async def _upload_parts(self, session: MultipartSession) -> None:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks = {
            asyncio.create_task(
                self._upload_part(session.upload_id, descriptor, semaphore),
                name=f"upload-part-{descriptor.part_number}",
            ): descriptor
            for descriptor in session.descriptors
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                failures: list[tuple[PartDescriptor, BaseException]] = []
                for task in done:
                    exc = task.exception()
                    if exc is None:
                        session.record(task.result())
                    else:
                        failures.append((tasks[task], exc))
                if failures:
                    descriptor, exc = min(failures, key=lambda f: f[0].part_number)
                    logger.warning(
                        "multipart_part_failed key=%s upload_id=%s part=%s error=%s",
                        self._object_key,
                        session.upload_id,
                        descriptor.part_number,
                        exc,
                    )
                    raise exc
        finally:
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

    async def _upload_part(
        self,
        upload_id: str,
        descriptor: PartDescriptor,
        semaphore: asyncio.Semaphore,
    ) -> CompletedPart:
        async with semaphore:
            body = await asyncio.to_thread(
                self._source.read_range,
                descriptor.byte_offset,
                descriptor.byte_length,
            )
            request = asyncio.ensure_future(
                asyncio.to_thread(
                    self._storage.upload_part,
                    bucket=self._bucket,
                    object_key=self._object_key,
                    upload_id=upload_id,
                    part_number=descriptor.part_number,
                    body=body,
                )
            )
            try:
                part = await asyncio.shield(request)
            except asyncio.CancelledError:
                # a part already on the wire must land before the session is aborted
                await asyncio.gather(request, return_exceptions=True)
                raise
            except Exception:
                self._count_part("failed")
                raise
        self._count_part("succeeded")
        if part.part_number != descriptor.part_number:
            raise SessionStateError(
                f"Remote acknowledged part {part.part_number} for part {descriptor.part_number}"
            )
        return part

    async def _abort(self, session: MultipartSession, cause: BaseException) -> None:
        """Release the server-side session, then raise IncompleteUploadError.

        A cancellation or other BaseException is left for the caller to
        re-raise once the abort request has been made. A cancellation that
        arrives while the abort itself is pending still closes the session,
        as abandoned, and is then re-raised.
        """
        self._transition(UploadState.ABORTING)
        abort_error: BaseException | None = None
        try:
            await asyncio.to_thread(
                self._storage.abort_multipart_upload,
                bucket=self._bucket,
                object_key=self._object_key,
                upload_id=session.upload_id,
            )
        except NoSuchUploadError:
            logger.info(
                "multipart_abort_unknown_upload key=%s upload_id=%s",
                self._object_key,
                session.upload_id,
            )
        except BaseException as exc:
            abort_error = exc

        released = abort_error is None
        session.mark_aborted(released=released)
        self._transition(UploadState.ABORTED)
        if self._record_metrics:
            ABORTS.labels(outcome="released" if released else "abandoned").inc()

        if released:
            logger.warning(
                "multipart_aborted key=%s upload_id=%s cause=%s",
                self._object_key,
                session.upload_id,
                cause,
            )
        else:
            logger.error(
                "multipart_abort_failed key=%s upload_id=%s cause=%s abort_error=%s",
                self._object_key,
                session.upload_id,
                cause,
                abort_error,
                extra={
                    "extra": {
                        "object_key": self._object_key,
                        "upload_id": session.upload_id,
                        "manual_cleanup": True,
                    }
                },
            )

        if abort_error is not None and not isinstance(abort_error, Exception):
            raise abort_error
        if not isinstance(cause, Exception):
            return
        message = f"Multipart upload of {self._object_key!r} failed: {cause}"
        if not released:
            message += f"; abort also failed ({abort_error}), manual cleanup may be required"
        raise IncompleteUploadError(
            message,
            object_key=self._object_key,
            upload_id=session.upload_id,
            aborted=released,
            cause=cause,
            abort_error=abort_error,
        ) from cause

    def _count_part(self, outcome: str) -> None:
        if self._record_metrics:
            UPLOAD_PARTS.labels(outcome=outcome).inc()
