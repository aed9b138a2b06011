"""
OpenAITranscriptionService against a stand-in client (no network).
"""
from __future__ import annotations

import asyncio
from types import SimpleNamespace

from tadone.domain.tasks.models import TranscriptionJobStatus
from tadone.infra.transcription.openai_transcriber import OpenAITranscriptionService

from fakes import FakeBlobStore

KEY = "audio/owner-1/t1.ogg"


class _Transcriptions:
    def __init__(self, text=None, error=None, gate=None):
        self.calls = []
        self._text = text
        self._error = error
        self._gate = gate

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self._gate is not None:
            await self._gate.wait()
        if self._error is not None:
            raise self._error
        return SimpleNamespace(text=self._text)


def _client(transcriptions):
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions))


def _blobs():
    blobs = FakeBlobStore()
    blobs.blobs[KEY] = (b"OggS", "audio/ogg")
    return blobs


async def _finish(service, job_id):
    for _ in range(100):
        job = await service.poll(job_id)
        if job.status != TranscriptionJobStatus.IN_PROGRESS:
            return job
        await asyncio.sleep(0)
    raise AssertionError("job never finished")


def test_completed_job_returns_text():
    async def run():
        transcriptions = _Transcriptions(text="Milch kaufen")
        service = OpenAITranscriptionService(_blobs(), api_key="sk-test", client=_client(transcriptions))

        job_id = await service.submit(KEY, "de")
        job = await _finish(service, job_id)

        assert job.status == TranscriptionJobStatus.COMPLETED
        assert job.text == "Milch kaufen"
        call = transcriptions.calls[0]
        assert call["model"] == "whisper-1"
        assert call["file"] == ("t1.ogg", b"OggS")
        assert call["language"] == "de"

    asyncio.run(run())


def test_no_language_hint_is_not_sent():
    async def run():
        transcriptions = _Transcriptions(text="hello")
        service = OpenAITranscriptionService(_blobs(), api_key="sk-test", client=_client(transcriptions))

        await _finish(service, await service.submit(KEY, None))
        assert "language" not in transcriptions.calls[0]

    asyncio.run(run())


def test_in_progress_until_request_returns():
    async def run():
        gate = asyncio.Event()
        service = OpenAITranscriptionService(
            _blobs(), api_key="sk-test", client=_client(_Transcriptions(text="ok", gate=gate))
        )

        job_id = await service.submit(KEY, "de")
        await asyncio.sleep(0)
        assert (await service.poll(job_id)).status == TranscriptionJobStatus.IN_PROGRESS

        gate.set()
        assert (await _finish(service, job_id)).status == TranscriptionJobStatus.COMPLETED

    asyncio.run(run())


def test_request_error_is_reported_as_failed():
    async def run():
        service = OpenAITranscriptionService(
            _blobs(), api_key="sk-test", client=_client(_Transcriptions(error=RuntimeError("rate limited")))
        )

        job = await _finish(service, await service.submit(KEY, "de"))
        assert job.status == TranscriptionJobStatus.FAILED
        assert job.error == "rate limited"

    asyncio.run(run())


def test_unknown_and_reported_jobs_are_failed():
    async def run():
        service = OpenAITranscriptionService(
            _blobs(), api_key="sk-test", client=_client(_Transcriptions(text="once"))
        )
        assert (await service.poll("nope")).status == TranscriptionJobStatus.FAILED

        job_id = await service.submit(KEY, "de")
        assert (await _finish(service, job_id)).status == TranscriptionJobStatus.COMPLETED
        # finished jobs are forgotten once reported
        assert (await service.poll(job_id)).status == TranscriptionJobStatus.FAILED

    asyncio.run(run())


def test_cancel_stops_pending_request_and_forgets_job():
    async def run():
        gate = asyncio.Event()
        service = OpenAITranscriptionService(
            _blobs(), api_key="sk-test", client=_client(_Transcriptions(text="never", gate=gate))
        )

        job_id = await service.submit(KEY, "de")
        await asyncio.sleep(0)
        pending = service._jobs[job_id]

        await service.cancel(job_id)

        assert pending.cancelled()
        assert (await service.poll(job_id)).status == TranscriptionJobStatus.FAILED
        # unknown and repeated cancels are no-ops
        await service.cancel(job_id)
        await service.cancel("nope")

    asyncio.run(run())


def test_cancel_collects_failed_job():
    async def run():
        service = OpenAITranscriptionService(
            _blobs(), api_key="sk-test", client=_client(_Transcriptions(error=RuntimeError("boom")))
        )
        job_id = await service.submit(KEY, "de")
        task = service._jobs[job_id]
        await asyncio.gather(task, return_exceptions=True)

        await service.cancel(job_id)
        assert service._jobs == {}
        assert isinstance(task.exception(), RuntimeError)

    asyncio.run(run())
