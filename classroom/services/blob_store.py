"""
Blob store port for submission attachments.

The physical backend is opaque to the rest of the service: callers only
``store`` a file and get back a stable reference, or ``delete`` by id.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from classroom.core.identifiers import new_id

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """The backend failed to store or delete a blob."""


@dataclass(frozen=True)
class StoredBlob:
    blob_id: str
    url: str
    secure_url: str
    format: str
    size_bytes: int


class BlobStore(Protocol):
    def store(self, *, filename: str, content: bytes, content_type: str) -> StoredBlob: ...

    def delete(self, blob_id: str) -> None: ...


def file_format(filename: str) -> str:
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot else ""


class LocalBlobStore:
    """Stores blobs as files under ``root``; urls are built from ``base_url``."""

    def __init__(self, root: Path | str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, blob_id: str) -> Path:
        if "/" in blob_id or "\\" in blob_id or blob_id.startswith("."):
            raise BlobStoreError(f"invalid blob id: {blob_id!r}")
        return self.root / blob_id

    def store(self, *, filename: str, content: bytes, content_type: str) -> StoredBlob:
        blob_id = f"submission_{new_id()}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path(blob_id).write_bytes(content)
        except OSError as exc:
            raise BlobStoreError(f"could not write {filename!r}: {exc}") from exc

        url = f"{self.base_url}/{blob_id}"
        secure_url = url.replace("http://", "https://", 1)
        return StoredBlob(
            blob_id=blob_id,
            url=url,
            secure_url=secure_url,
            format=file_format(filename),
            size_bytes=len(content),
        )

    def delete(self, blob_id: str) -> None:
        try:
            self._path(blob_id).unlink()
        except FileNotFoundError as exc:
            raise BlobStoreError(f"blob {blob_id!r} does not exist") from exc
        except OSError as exc:
            raise BlobStoreError(f"could not delete {blob_id!r}: {exc}") from exc


def delete_blobs(store: BlobStore, blob_ids: Iterable[str]) -> list[str]:
    """Delete each blob, logging failures. Returns the ids that could not be deleted."""
    failed = []
    for blob_id in blob_ids:
        try:
            store.delete(blob_id)
        except BlobStoreError:
            logger.warning("Could not delete blob %s", blob_id, exc_info=True)
            failed.append(blob_id)
    return failed
