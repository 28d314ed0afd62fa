import logging
from collections.abc import Iterable
from typing import Any, Optional

import httpx

from classroom.uploads.errors import MalformedUploadResponse, UploadError, UploadRefused
from classroom.uploads.pipeline import UploadCandidate, UploadPipeline

logger = logging.getLogger(__name__)

# request timeout and rate limiting; every other 4xx is final
RETRYABLE_CLIENT_ERRORS = {408, 429}


class SubmissionRejected(Exception):
    """The server refused the finalized submission."""

    def __init__(self, status_code: int, code: Optional[str], detail: str):
        self.status_code = status_code
        self.code = code
        self.detail = detail
        super().__init__(f"{status_code} {code or 'error'}: {detail}")


class SubmissionClient:
    """
    HTTP client for the submission endpoints.

    ``upload`` sends one file per request to ``/submissions/uploads`` and is
    what an UploadPipeline calls for each attempt; ``submit`` finalizes a
    pipeline and posts the submission with its completed attachments.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        task_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
    ):
        self.task_id = task_id
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def upload(self, candidate: UploadCandidate) -> dict[str, Any]:
        data = {"task_id": self.task_id} if self.task_id else None
        try:
            response = await self._http.post(
                "/submissions/uploads",
                files={"files": (candidate.name, candidate.content, candidate.content_type)},
                data=data,
            )
        except httpx.HTTPError as exc:
            raise UploadError(f"network error: {exc}") from exc

        if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_CLIENT_ERRORS:
            body = _json_or_none(response) or {}
            raise UploadRefused(response.status_code, body.get("code"), _detail(response))
        if response.status_code >= 400:
            raise UploadError(f"upload rejected with {response.status_code}: {_detail(response)}")

        try:
            images = response.json()["images"]
        except (ValueError, KeyError, TypeError) as exc:
            raise MalformedUploadResponse("upload response has no images list") from exc
        if not isinstance(images, list) or len(images) != 1:
            raise MalformedUploadResponse("expected exactly one uploaded file in the response")
        return images[0]

    async def submit(
        self,
        task_id: str,
        comment: str,
        pipeline: UploadPipeline,
        collaborators: Iterable[str] = (),
    ) -> dict[str, Any]:
        """Finalize the pipeline and create the submission.

        Raises UploadsIncomplete without contacting the server when any file
        is not uploaded.
        """
        attachments = await pipeline.finalize()
        payload = {
            "task_id": task_id,
            "comment": comment,
            "collaborators": list(collaborators),
            "attachments": [a.as_payload() for a in attachments],
        }
        response = await self._http.post("/submissions", json=payload)
        if response.status_code != 201:
            body = _json_or_none(response) or {}
            raise SubmissionRejected(response.status_code, body.get("code"), _detail(response))

        logger.info("Submitted task %s with %s attachment(s)", task_id, len(attachments))
        return response.json()


def _json_or_none(response: httpx.Response):
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _detail(response: httpx.Response) -> str:
    body = _json_or_none(response)
    if body and body.get("detail"):
        return str(body["detail"])
    return response.text or response.reason_phrase
