"""Server side of the attachment upload: validate a batch, then store it."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from classroom.core.config import MAX_FILES_PER_UPLOAD
from classroom.core.errors import NoFiles, TooManyFiles, UploadFailed
from classroom.services.blob_store import BlobStore, BlobStoreError, delete_blobs
from classroom.uploads.policy import UploadPolicy

logger = logging.getLogger(__name__)


@dataclass
class IncomingFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def store_batch(blob_store: BlobStore, files: list[IncomingFile], policy: UploadPolicy) -> list[dict]:
    """
    Store every file or none of them.

    The whole batch is validated before anything is written. If the
    backend fails part way, blobs already written for this batch are
    deleted (best effort) and UploadFailed is raised.
    """
    if not files:
        raise NoFiles()
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise TooManyFiles(f"At most {MAX_FILES_PER_UPLOAD} files per upload")

    for f in files:
        policy.check(f.filename, len(f.content))

    stored: list[dict] = []
    for f in files:
        try:
            blob = blob_store.store(filename=f.filename, content=f.content, content_type=f.content_type)
        except BlobStoreError as exc:
            logger.error("Storing %s failed: %s", f.filename, exc)
            delete_blobs(blob_store, [s["blob_id"] for s in stored])
            raise UploadFailed(f"Failed to upload {f.filename}") from exc

        if not blob.blob_id or not blob.url:
            delete_blobs(blob_store, [s["blob_id"] for s in stored] + ([blob.blob_id] if blob.blob_id else []))
            raise UploadFailed(f"Blob store returned an incomplete reference for {f.filename}")

        stored.append(
            {
                "blob_id": blob.blob_id,
                "url": blob.url,
                "secure_url": blob.secure_url or blob.url.replace("http://", "https://", 1),
                "original_name": f.filename,
                "size_bytes": blob.size_bytes,
                "format": blob.format or f.filename.rpartition(".")[2].lower(),
                "uploaded_at": datetime.now(timezone.utc),
            }
        )

    logger.info("Stored %s uploaded file(s)", len(stored))
    return stored
