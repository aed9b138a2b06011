from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import PurePosixPath
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from tadone.domain.tasks.models import TranscriptionJob, TranscriptionJobStatus
from tadone.domain.tasks.ports import BlobStore, TranscriptionService

logger = logging.getLogger(__name__)


class OpenAITranscriptionService(TranscriptionService):
    """
    Job-style wrapper over the OpenAI audio transcription endpoint.

    submit() reads the blob and starts the request in the background;
    poll() reports on it. Finished jobs are forgotten once reported.
    """

    def __init__(
        self,
        blobs: BlobStore,
        api_key: str,
        model: str = "whisper-1",
        client: Optional[Any] = None,
        request_timeout: float = 60.0,
    ) -> None:
        self._blobs = blobs
        self._model = model
        # disable SDK retries: the caller has its own bounded wait
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=request_timeout, max_retries=0)
        self._jobs: Dict[str, asyncio.Task] = {}

    async def submit(self, audio_ref: str, language_hint: Optional[str]) -> str:
        data = await self._blobs.get(audio_ref)
        job_id = uuid.uuid4().hex
        filename = PurePosixPath(audio_ref).name or "audio.ogg"
        self._jobs[job_id] = asyncio.create_task(self._run(job_id, filename, data, language_hint))
        logger.info("Transcription submitted job=%s ref=%s bytes=%s", job_id, audio_ref, len(data))
        return job_id

    async def poll(self, job_id: str) -> TranscriptionJob:
        job = self._jobs.get(job_id)
        if job is None:
            return TranscriptionJob(job_id=job_id, status=TranscriptionJobStatus.FAILED, error="Unknown transcription job.")
        if not job.done():
            return TranscriptionJob(job_id=job_id, status=TranscriptionJobStatus.IN_PROGRESS)

        self._jobs.pop(job_id, None)
        if job.cancelled():
            return TranscriptionJob(job_id=job_id, status=TranscriptionJobStatus.FAILED, error="Transcription cancelled.")
        exc = job.exception()
        if exc is not None:
            return TranscriptionJob(job_id=job_id, status=TranscriptionJobStatus.FAILED, error=str(exc) or "Transcription failed.")
        return TranscriptionJob(job_id=job_id, status=TranscriptionJobStatus.COMPLETED, text=job.result())

    async def cancel(self, job_id: str) -> None:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return
        if not job.done():
            job.cancel()
            logger.info("Transcription cancelled job=%s", job_id)
        # collect the outcome so a failed or cancelled task is not reported as unretrieved
        await asyncio.gather(job, return_exceptions=True)

    async def _run(self, job_id: str, filename: str, data: bytes, language_hint: Optional[str]) -> str:
        kwargs: Dict[str, Any] = {"model": self._model, "file": (filename, data)}
        if language_hint:
            kwargs["language"] = language_hint
        try:
            result = await self._client.audio.transcriptions.create(**kwargs)
        except Exception:
            logger.error("Transcription request failed job=%s", job_id, exc_info=True)
            raise
        text = getattr(result, "text", None) or ""
        logger.info("Transcription finished job=%s chars=%s", job_id, len(text))
        return text
