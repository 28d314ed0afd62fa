class UploadError(Exception):
    """A single upload attempt failed; the pipeline may retry it."""


class MalformedUploadResponse(UploadError):
    """The blob store answered, but without a usable reference."""


class UploadRefused(Exception):
    """The server refused the file itself; retrying the same request cannot succeed."""

    def __init__(self, status_code: int, code: str | None, detail: str):
        self.status_code = status_code
        self.code = code
        self.detail = detail
        super().__init__(f"upload refused with {status_code} {code or 'error'}: {detail}")


class FileRejected(Exception):
    """A candidate file did not pass the validation gate."""

    def __init__(self, filename: str, code: str, message: str):
        self.filename = filename
        self.code = code
        self.message = message
        super().__init__(f"{filename}: {message}")


class UploadsIncomplete(Exception):
    """Finalize was refused because some files are not uploaded."""

    code = "uploads_incomplete"

    def __init__(self, files):
        self.files = list(files)
        names = ", ".join(f"{f.name} ({f.state.value})" for f in self.files)
        super().__init__(
            f"{len(self.files)} file(s) are not uploaded: {names}. Please retry or remove them."
        )


class UploadCancelled(Exception):
    """The pipeline was cancelled before finalize."""
