"""
Client-side attachment upload pipeline.

Files selected for a submission go through a validation gate, then are
uploaded concurrently, one asyncio task per file. Each file moves through

    pending -> uploading -> completed
                         -> failed   (retry policy exhausted, or the server refused the file)
    failed  -> pending               (manual retry)

``finalize`` waits for every running upload and returns the attachment
descriptors only if every tracked file is completed. Anything else is
refused with UploadsIncomplete; files are never dropped silently.
"""
from __future__ import annotations

import asyncio
import enum
import itertools
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from classroom.core.errors import DomainError
from classroom.uploads.errors import (
    FileRejected,
    MalformedUploadResponse,
    UploadCancelled,
    UploadError,
    UploadRefused,
    UploadsIncomplete,
)
from classroom.uploads.policy import UploadPolicy
from classroom.uploads.retry import CancellationToken, RetryPolicy

logger = logging.getLogger(__name__)

_REQUIRED_KEYS = ("blob_id", "url", "secure_url", "format", "size_bytes")


class FileState(str, enum.Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadCandidate:
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class AttachmentDescriptor:
    blob_id: str
    url: str
    secure_url: str
    original_name: str
    size_bytes: int
    format: str
    uploaded_at: str

    @classmethod
    def from_response(cls, data: Any, candidate: UploadCandidate) -> "AttachmentDescriptor":
        """Build from a blob store reply; anything partial is a failed upload."""
        if not isinstance(data, dict):
            raise MalformedUploadResponse(f"expected an object, got {type(data).__name__}")
        if "blob_id" not in data and data.get("public_id"):
            data = {**data, "blob_id": data["public_id"]}
        if "size_bytes" not in data and "size" in data:
            data = {**data, "size_bytes": data["size"]}

        missing = [k for k in _REQUIRED_KEYS if data.get(k) in (None, "")]
        if missing:
            raise MalformedUploadResponse(f"response is missing {', '.join(missing)}")

        size = data["size_bytes"]
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise MalformedUploadResponse(f"invalid size {size!r}")

        uploaded_at = data.get("uploaded_at") or datetime.now(timezone.utc).isoformat()
        return cls(
            blob_id=str(data["blob_id"]),
            url=str(data["url"]),
            secure_url=str(data["secure_url"]),
            original_name=str(data.get("original_name") or candidate.name),
            size_bytes=size,
            format=str(data["format"]).lower(),
            uploaded_at=str(uploaded_at),
        )

    def as_payload(self) -> dict[str, Any]:
        return {
            "blob_id": self.blob_id,
            "url": self.url,
            "secure_url": self.secure_url,
            "original_name": self.original_name,
            "size_bytes": self.size_bytes,
            "format": self.format,
            "uploaded_at": self.uploaded_at,
            "status": FileState.COMPLETED.value,
        }


class Uploader(Protocol):
    async def upload(self, candidate: UploadCandidate) -> dict[str, Any]: ...


@dataclass
class TrackedFile:
    id: int
    candidate: UploadCandidate
    state: FileState = FileState.PENDING
    attempts: int = 0
    last_error: str | None = None
    descriptor: AttachmentDescriptor | None = None

    @property
    def name(self) -> str:
        return self.candidate.name

    @property
    def size(self) -> int:
        return self.candidate.size


@dataclass
class BatchResult:
    accepted: list[TrackedFile] = field(default_factory=list)
    rejected: list[FileRejected] = field(default_factory=list)


class UploadPipeline:
    def __init__(
        self,
        uploader: Uploader,
        policy: UploadPolicy | None = None,
        retry: RetryPolicy | None = None,
        token: CancellationToken | None = None,
    ):
        self.uploader = uploader
        self.policy = policy or UploadPolicy()
        self.retry_policy = retry or RetryPolicy()
        self.token = token or CancellationToken()
        self._files: dict[int, TrackedFile] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._ids = itertools.count(1)

    # --- inspection -----------------------------------------------------------

    @property
    def files(self) -> list[TrackedFile]:
        return list(self._files.values())

    def get(self, file_id: int) -> TrackedFile:
        return self._files[file_id]

    def progress(self) -> dict[str, int]:
        counts = {state.value: 0 for state in FileState}
        for f in self._files.values():
            counts[f.state.value] += 1
        return counts

    # --- validation gate ------------------------------------------------------

    def add(self, candidates: Iterable[UploadCandidate]) -> BatchResult:
        """Validate candidates and track the ones that pass as pending."""
        result = BatchResult()
        seen = {(f.name, f.size) for f in self._files.values()}
        for candidate in candidates:
            try:
                self.policy.check(candidate.name, candidate.size)
            except DomainError as exc:
                result.rejected.append(FileRejected(candidate.name, exc.code, exc.message))
                continue

            key = (candidate.name, candidate.size)
            if key in seen:
                result.rejected.append(
                    FileRejected(candidate.name, "duplicate_file", "This file is already added")
                )
                continue
            seen.add(key)

            tracked = TrackedFile(id=next(self._ids), candidate=candidate)
            self._files[tracked.id] = tracked
            result.accepted.append(tracked)

        for rejection in result.rejected:
            logger.info("Rejected %s: %s", rejection.filename, rejection.message)
        return result

    # --- uploading ------------------------------------------------------------

    def start(self) -> list[asyncio.Task]:
        """Launch an upload task for every pending file that is not running yet."""
        if self.token.cancelled:
            raise UploadCancelled("pipeline was cancelled")
        started = []
        for tracked in self._files.values():
            if tracked.state is FileState.PENDING and tracked.id not in self._tasks:
                task = asyncio.create_task(self._run(tracked), name=f"upload:{tracked.name}")
                self._tasks[tracked.id] = task
                task.add_done_callback(lambda _t, file_id=tracked.id: self._tasks.pop(file_id, None))
                started.append(task)
        return started

    async def _run(self, tracked: TrackedFile) -> None:
        policy = self.retry_policy
        for attempt in range(1, policy.max_attempts + 1):
            if self.token.cancelled:
                tracked.state = FileState.FAILED
                tracked.last_error = "cancelled"
                return

            tracked.state = FileState.UPLOADING
            tracked.attempts += 1
            try:
                response = await self.uploader.upload(tracked.candidate)
                descriptor = AttachmentDescriptor.from_response(response, tracked.candidate)
            except UploadRefused as exc:
                tracked.state = FileState.FAILED
                tracked.last_error = str(exc)
                logger.warning("Upload of %s refused, not retrying: %s", tracked.name, exc)
                return
            except UploadError as exc:
                tracked.last_error = str(exc) or type(exc).__name__
                if attempt == policy.max_attempts:
                    tracked.state = FileState.FAILED
                    logger.warning(
                        "Upload of %s failed permanently after %s attempt(s): %s",
                        tracked.name,
                        attempt,
                        tracked.last_error,
                    )
                    return

                delay = policy.delay_for(attempt)
                tracked.state = FileState.PENDING
                logger.info(
                    "Upload of %s failed (attempt %s/%s), retrying in %.1fs: %s",
                    tracked.name,
                    attempt,
                    policy.max_attempts,
                    delay,
                    tracked.last_error,
                )
                if not await self.token.sleep(delay):
                    tracked.state = FileState.FAILED
                    tracked.last_error = "cancelled"
                    return
                continue
            except Exception as exc:
                tracked.state = FileState.FAILED
                tracked.last_error = str(exc) or type(exc).__name__
                logger.exception("Upload of %s failed unexpectedly", tracked.name)
                return

            tracked.descriptor = descriptor
            tracked.state = FileState.COMPLETED
            tracked.last_error = None
            logger.info("Uploaded %s as %s", tracked.name, descriptor.blob_id)
            return

    def retry(self, file_id: int) -> asyncio.Task:
        """Manually retry a failed file with a fresh retry budget."""
        tracked = self._files[file_id]
        if tracked.state is not FileState.FAILED:
            raise ValueError(f"{tracked.name} is {tracked.state.value}, only failed files can be retried")
        tracked.state = FileState.PENDING
        tracked.last_error = None
        self.start()
        return self._tasks[file_id]

    def remove(self, file_id: int) -> TrackedFile:
        """Stop tracking a file; an in-flight upload for it is cancelled."""
        tracked = self._files.pop(file_id)
        task = self._tasks.pop(file_id, None)
        if task is not None:
            task.cancel()
        return tracked

    def cancel(self) -> None:
        """Abandon the pipeline. Blobs already stored are left for an external sweep."""
        self.token.cancel()
        for task in list(self._tasks.values()):
            task.cancel()
        self._tasks.clear()

    # --- finalize -------------------------------------------------------------

    async def wait(self) -> None:
        """Wait until no upload task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def finalize(self) -> list[AttachmentDescriptor]:
        if self.token.cancelled:
            raise UploadCancelled("pipeline was cancelled")
        await self.wait()

        incomplete = [f for f in self._files.values() if f.state is not FileState.COMPLETED]
        if incomplete:
            raise UploadsIncomplete(incomplete)
        return [f.descriptor for f in self._files.values()]
