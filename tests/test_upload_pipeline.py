import asyncio

import pytest

from classroom.uploads.errors import UploadCancelled, UploadError, UploadRefused, UploadsIncomplete
from classroom.uploads.pipeline import FileState, UploadCandidate, UploadPipeline
from classroom.uploads.policy import UploadPolicy
from classroom.uploads.retry import CancellationToken, RetryPolicy

NO_WAIT = RetryPolicy(max_retries=3, base_delay=0, multiplier=2)


class FakeUploader:
    """Answers like the upload endpoint; names in ``failing`` always fail."""

    def __init__(self, failing=(), flaky=None, refused=(), broken=()):
        self.failing = set(failing)
        self.refused = set(refused)
        self.broken = set(broken)
        self.flaky = dict(flaky or {})  # name -> failures before success
        self.calls = []

    async def upload(self, candidate):
        self.calls.append(candidate.name)
        blob_id = f"submission_{len(self.calls):04d}"
        await asyncio.sleep(0)
        if candidate.name in self.failing:
            raise UploadError("503 from blob store")
        if candidate.name in self.refused:
            raise UploadRefused(400, "invalid_type", "File type not allowed")
        if candidate.name in self.broken:
            raise RuntimeError("boom")
        if self.flaky.get(candidate.name):
            self.flaky[candidate.name] -= 1
            raise UploadError("connection reset")
        return {
            "blob_id": blob_id,
            "url": f"http://testserver/blobs/{blob_id}",
            "secure_url": f"https://testserver/blobs/{blob_id}",
            "original_name": candidate.name,
            "size_bytes": candidate.size,
            "format": candidate.name.rpartition(".")[2],
        }


def files(*names):
    return [UploadCandidate(name, f"content of {name}".encode()) for name in names]


def test_retry_policy_backoff():
    policy = RetryPolicy()
    assert policy.max_attempts == 4
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]


def test_validation_gate_rejects_before_upload():
    pipeline = UploadPipeline(FakeUploader(), UploadPolicy(max_file_size=100))
    result = pipeline.add(
        [
            UploadCandidate("notes.pdf", b"x" * 10),
            UploadCandidate("script.exe", b"x" * 10),
            UploadCandidate("huge.pdf", b"x" * 101),
            UploadCandidate("notes.pdf", b"y" * 10),
        ]
    )
    assert [f.name for f in result.accepted] == ["notes.pdf"]
    assert [(r.filename, r.code) for r in result.rejected] == [
        ("script.exe", "invalid_type"),
        ("huge.pdf", "file_too_large"),
        ("notes.pdf", "duplicate_file"),
    ]
    assert pipeline.progress()["pending"] == 1


def test_all_files_upload_concurrently():
    async def scenario():
        uploader = FakeUploader()
        pipeline = UploadPipeline(uploader, retry=NO_WAIT)
        pipeline.add(files("a.pdf", "b.png", "c.docx"))
        pipeline.start()
        return uploader, await pipeline.finalize()

    uploader, descriptors = asyncio.run(scenario())
    assert sorted(uploader.calls) == ["a.pdf", "b.png", "c.docx"]
    # descriptors keep the order files were added in
    assert [d.original_name for d in descriptors] == ["a.pdf", "b.png", "c.docx"]
    assert all(d.uploaded_at.endswith("+00:00") for d in descriptors)
    assert all(d.blob_id.startswith("submission_") for d in descriptors)


def test_partial_failure_refuses_finalize_until_resolved():
    async def scenario():
        uploader = FakeUploader(failing={"d.pdf", "e.pdf"})
        pipeline = UploadPipeline(uploader, retry=NO_WAIT)
        pipeline.add(files("a.pdf", "b.pdf", "c.pdf", "d.pdf", "e.pdf"))
        pipeline.start()

        with pytest.raises(UploadsIncomplete) as excinfo:
            await pipeline.finalize()
        failed = excinfo.value.files
        assert sorted(f.name for f in failed) == ["d.pdf", "e.pdf"]
        assert all(f.state is FileState.FAILED for f in failed)
        assert "2 file(s) are not uploaded" in str(excinfo.value)
        # one initial attempt plus three retries each
        assert uploader.calls.count("d.pdf") == 4

        for f in failed:
            pipeline.remove(f.id)
        return await pipeline.finalize()

    descriptors = asyncio.run(scenario())
    assert [d.original_name for d in descriptors] == ["a.pdf", "b.pdf", "c.pdf"]


def test_transient_failure_recovers_within_retry_budget():
    async def scenario():
        uploader = FakeUploader(flaky={"a.pdf": 2})
        pipeline = UploadPipeline(uploader, retry=NO_WAIT)
        (tracked,) = pipeline.add(files("a.pdf")).accepted
        pipeline.start()
        descriptors = await pipeline.finalize()
        return tracked, descriptors

    tracked, descriptors = asyncio.run(scenario())
    assert tracked.state is FileState.COMPLETED
    assert tracked.attempts == 3
    assert len(descriptors) == 1


def test_manual_retry_after_permanent_failure():
    async def scenario():
        uploader = FakeUploader(failing={"a.pdf"})
        pipeline = UploadPipeline(uploader, retry=RetryPolicy(max_retries=0, base_delay=0))
        (tracked,) = pipeline.add(files("a.pdf")).accepted
        pipeline.start()
        await pipeline.wait()
        assert tracked.state is FileState.FAILED
        assert tracked.last_error == "503 from blob store"

        uploader.failing.clear()
        await pipeline.retry(tracked.id)
        return tracked, await pipeline.finalize()

    tracked, descriptors = asyncio.run(scenario())
    assert tracked.state is FileState.COMPLETED
    assert [d.original_name for d in descriptors] == ["a.pdf"]


def test_only_failed_files_can_be_retried():
    pipeline = UploadPipeline(FakeUploader())
    (tracked,) = pipeline.add(files("a.pdf")).accepted
    with pytest.raises(ValueError):
        pipeline.retry(tracked.id)


@pytest.mark.parametrize(
    "response",
    [
        {"url": "http://x/1", "secure_url": "https://x/1", "format": "pdf", "size_bytes": 3},
        {"blob_id": "submission_1", "url": "http://x/1", "format": "pdf", "size_bytes": 3},
        {"blob_id": "submission_1", "url": "http://x/1", "secure_url": "https://x/1", "size_bytes": 3},
        {"blob_id": "submission_1", "url": "http://x/1", "secure_url": "https://x/1", "format": "pdf"},
        {"blob_id": "submission_1", "url": "", "secure_url": "https://x/1", "format": "pdf", "size_bytes": 3},
        ["not", "an", "object"],
    ],
)
def test_malformed_response_is_a_failed_upload(response):
    class PartialUploader:
        async def upload(self, candidate):
            return response

    async def scenario():
        pipeline = UploadPipeline(PartialUploader(), retry=RetryPolicy(max_retries=1, base_delay=0))
        (tracked,) = pipeline.add(files("a.pdf")).accepted
        pipeline.start()
        with pytest.raises(UploadsIncomplete):
            await pipeline.finalize()
        return tracked

    tracked = asyncio.run(scenario())
    assert tracked.state is FileState.FAILED
    assert tracked.attempts == 2
    assert tracked.descriptor is None


def test_blob_store_naming_is_accepted():
    class CloudUploader:
        async def upload(self, candidate):
            return {
                "public_id": "submission_abc",
                "url": "http://x/abc",
                "secure_url": "https://x/abc",
                "format": "PDF",
                "size": 12,
            }

    async def scenario():
        pipeline = UploadPipeline(CloudUploader(), retry=NO_WAIT)
        pipeline.add(files("a.pdf"))
        pipeline.start()
        return await pipeline.finalize()

    (descriptor,) = asyncio.run(scenario())
    assert descriptor.blob_id == "submission_abc"
    assert descriptor.size_bytes == 12
    assert descriptor.format == "pdf"
    assert descriptor.as_payload()["status"] == "completed"


def test_cancel_stops_scheduled_retries():
    async def scenario():
        uploader = FakeUploader(failing={"a.pdf"})
        token = CancellationToken()
        pipeline = UploadPipeline(uploader, retry=RetryPolicy(max_retries=3, base_delay=30), token=token)
        (tracked,) = pipeline.add(files("a.pdf")).accepted
        (task,) = pipeline.start()

        # let the first attempt fail and the backoff wait begin
        for _ in range(5):
            await asyncio.sleep(0)
        assert tracked.state is FileState.PENDING

        token.cancel()
        await asyncio.wait_for(task, timeout=1)

        with pytest.raises(UploadCancelled):
            await pipeline.finalize()
        return uploader, tracked

    uploader, tracked = asyncio.run(scenario())
    assert uploader.calls == ["a.pdf"]
    assert tracked.state is FileState.FAILED
    assert tracked.last_error == "cancelled"


def test_cancelled_pipeline_cannot_start():
    async def scenario():
        pipeline = UploadPipeline(FakeUploader())
        pipeline.add(files("a.pdf"))
        pipeline.cancel()
        with pytest.raises(UploadCancelled):
            pipeline.start()

    asyncio.run(scenario())


def test_refused_file_fails_without_retrying():
    async def scenario():
        uploader = FakeUploader(refused={"a.pdf"})
        pipeline = UploadPipeline(uploader, retry=NO_WAIT)
        (tracked,) = pipeline.add(files("a.pdf")).accepted
        pipeline.start()
        await pipeline.wait()
        return uploader, tracked

    uploader, tracked = asyncio.run(scenario())
    assert uploader.calls == ["a.pdf"]
    assert tracked.state is FileState.FAILED
    assert "invalid_type" in tracked.last_error


def test_unexpected_uploader_error_fails_the_file():
    async def scenario():
        uploader = FakeUploader(broken={"a.pdf"})
        pipeline = UploadPipeline(uploader, retry=NO_WAIT)
        pipeline.add(files("a.pdf", "b.pdf"))
        pipeline.start()
        await pipeline.wait()
        with pytest.raises(UploadsIncomplete) as excinfo:
            await pipeline.finalize()
        return pipeline, excinfo.value

    pipeline, error = asyncio.run(scenario())
    assert [f.name for f in error.files] == ["a.pdf"]
    assert pipeline.progress() == {"pending": 0, "uploading": 0, "completed": 1, "failed": 1}
    assert pipeline.files[0].last_error == "boom"
