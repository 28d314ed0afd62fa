"""Attachment acceptance rules shared by the upload endpoint and the client pipeline."""
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from classroom.core.config import (
    DEFAULT_ALLOWED_FILE_TYPES,
    DEFAULT_MAX_FILE_SIZE,
    MAX_FILENAME_LENGTH,
)
from classroom.core.errors import FileTooLarge, InvalidFilename, InvalidFileType

# control characters, path separators and characters most filesystems reject
_BAD_FILENAME_CHARS = re.compile(r'[\x00-\x1f\x7f/\\:*?"<>|]')


def extension(filename: str) -> str:
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot else ""


def format_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"
        value /= 1024
    return f"{size} Bytes"


@dataclass(frozen=True)
class UploadPolicy:
    allowed_types: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_ALLOWED_FILE_TYPES))
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_name_length: int = MAX_FILENAME_LENGTH

    @classmethod
    def for_task(cls, task) -> "UploadPolicy":
        """Build from a Task row or a task-shaped mapping."""
        if isinstance(task, dict):
            types = task.get("allowed_file_types") or DEFAULT_ALLOWED_FILE_TYPES
            max_size = task.get("max_file_size") or DEFAULT_MAX_FILE_SIZE
        else:
            types = task.allowed_types or DEFAULT_ALLOWED_FILE_TYPES
            max_size = task.max_file_size or DEFAULT_MAX_FILE_SIZE
        return cls(allowed_types=_normalize_types(types), max_file_size=max_size)

    def check_name(self, filename: str) -> None:
        name = (filename or "").strip()
        if not name or name in (".", ".."):
            raise InvalidFilename("Filename is empty")
        if len(name) > self.max_name_length:
            raise InvalidFilename(f"Filename is longer than {self.max_name_length} characters")
        if _BAD_FILENAME_CHARS.search(name):
            raise InvalidFilename(f"Filename {name!r} contains forbidden characters")

    def check_type(self, filename: str) -> None:
        ext = extension(filename)
        if ext not in self.allowed_types:
            allowed = ", ".join(sorted(self.allowed_types))
            raise InvalidFileType(f"File type .{ext} is not allowed. Allowed types: {allowed}")

    def check_size(self, size: int) -> None:
        if size > self.max_file_size:
            raise FileTooLarge(f"File exceeds the maximum size of {format_size(self.max_file_size)}")

    def check(self, filename: str, size: int) -> None:
        self.check_name(filename)
        self.check_type(filename)
        self.check_size(size)


def _normalize_types(types: str | Iterable[str]) -> frozenset[str]:
    if isinstance(types, str):
        types = types.split(",")
    return frozenset(t.strip().lower().lstrip(".") for t in types if t.strip())
