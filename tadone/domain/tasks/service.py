from __future__ import annotations

import asyncio
import logging
from typing import Optional

from tadone.domain.common.errors import (
    ExternalServiceError,
    NotFoundError,
    PreconditionError,
    TranscriptionTimeoutError,
    ValidationError,
)
from tadone.domain.tasks.models import (
    CreateTaskRequest,
    EditTaskRequest,
    SweepResult,
    Task,
    TaskPatch,
    TaskStatus,
    TranscriptionJobStatus,
)
from tadone.domain.tasks.ports import BlobStore, Clock, IdGenerator, TaskRepository, TranscriptionService
from tadone.domain.tasks.rules import (
    ensure_can_delete,
    ensure_can_reactivate,
    ensure_can_snooze,
    ensure_not_archived,
    parse_due_date,
    parse_status,
    should_undo_snooze,
    snooze_horizon,
    validate_description,
    validate_title,
)
from tadone.domain.tasks.sweep import TaskSweeper

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
}


def audio_key_for(owner_id: str, task_id: str, content_type: str) -> str:
    ext = AUDIO_EXTENSIONS.get((content_type or "").split(";")[0].strip().lower(), "bin")
    return f"audio/{owner_id}/{task_id}.{ext}"


class TaskService:
    """
    Task lifecycle commands. No aiogram. No sqlite.

    Every command re-reads the task, checks its guard against the persisted
    status and then writes with a compare-and-set on that status, so a
    concurrent transition surfaces as ConflictError instead of being
    overwritten.
    """

    def __init__(
        self,
        repo: TaskRepository,
        clock: Clock,
        ids: IdGenerator,
        blobs: BlobStore,
        transcriber: Optional[TranscriptionService] = None,
        *,
        language_hint: Optional[str] = "de",
        transcribe_timeout: float = 20.0,
        transcribe_poll_interval: float = 2.0,
        audio_url_ttl: int = 300,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._ids = ids
        self._blobs = blobs
        self._transcriber = transcriber
        self._language_hint = language_hint
        self._transcribe_timeout = transcribe_timeout
        self._poll_interval = transcribe_poll_interval
        self._audio_url_ttl = audio_url_ttl
        self._sweeper = TaskSweeper(repo)

    # ---- reads ----

    async def list_tasks(self, owner_id: str, view: Optional[TaskStatus] = None) -> list[Task]:
        now = self._clock.now()
        stored = await self._repo.query(owner_id)
        result = await self._sweeper.sweep(owner_id, stored, now)

        tasks = result.tasks
        if view is None:
            return sorted(tasks, key=lambda t: t.created_at)
        tasks = [t for t in tasks if t.status == view]
        # done list shows the newest first, every other list the oldest first
        return sorted(tasks, key=lambda t: t.created_at, reverse=view == TaskStatus.DONE)

    async def get_task(self, owner_id: str, task_id: str) -> Task:
        return await self._repo.get(owner_id, task_id)

    # ---- commands ----

    async def create(self, req: CreateTaskRequest) -> Task:
        title = validate_title(req.title)
        description = validate_description(req.description)
        now = self._clock.now()
        due_date = parse_due_date(req.due_date, now.tzinfo)
        status = parse_status(req.status)

        task = Task(
            owner_id=req.owner_id,
            task_id=self._ids.new_id(),
            title=title,
            description=description,
            status=status,
            created_at=now,
            updated_at=now,
            due_date=due_date,
        )
        if status == TaskStatus.SNOOZE:
            task = task.with_changes(snooze_count=1, snoozed_until=snooze_horizon(now))
        elif status == TaskStatus.DONE:
            task = task.with_changes(done_at=now)
        elif status == TaskStatus.ARCHIVED:
            task = task.with_changes(done_at=now, archived_at=now)

        await self._repo.put(task)
        logger.info("Task created owner=%s task=%s status=%s", task.owner_id, task.task_id, status.value)
        return task

    async def edit(self, req: EditTaskRequest) -> Task:
        fields = {}
        if req.title is not None:
            fields["title"] = validate_title(req.title)
        if req.description is not None:
            fields["description"] = validate_description(req.description)
        if req.due_date is not None:
            # "" clears the due date
            fields["due_date"] = parse_due_date(req.due_date, self._clock.now().tzinfo)

        task = await self._repo.get(req.owner_id, req.task_id)
        ensure_not_archived(task)

        fields["updated_at"] = self._clock.now()
        return await self._repo.conditional_update(
            req.owner_id, req.task_id, TaskPatch(fields=fields), expected_status=task.status
        )

    async def snooze(self, owner_id: str, task_id: str) -> Task:
        task = await self._repo.get(owner_id, task_id)
        ensure_can_snooze(task)

        now = self._clock.now()
        patch = TaskPatch(
            fields={"status": TaskStatus.SNOOZE, "snoozed_until": snooze_horizon(now), "updated_at": now},
            snooze_count_delta=1,
        )
        return await self._repo.conditional_update(owner_id, task_id, patch, expected_status=task.status)

    async def mark_done(self, owner_id: str, task_id: str) -> Task:
        task = await self._repo.get(owner_id, task_id)
        ensure_not_archived(task)

        now = self._clock.now()
        patch = TaskPatch(
            fields={"status": TaskStatus.DONE, "snoozed_until": None, "done_at": now, "updated_at": now}
        )
        return await self._repo.conditional_update(owner_id, task_id, patch, expected_status=task.status)

    async def reactivate(self, owner_id: str, task_id: str) -> Task:
        task = await self._repo.get(owner_id, task_id)
        ensure_can_reactivate(task)

        now = self._clock.now()
        patch = TaskPatch(
            fields={
                "status": TaskStatus.TODO,
                "snoozed_until": None,
                "done_at": None,
                "archived_at": None,
                "updated_at": now,
            },
            snooze_count_delta=-1 if should_undo_snooze(task, now) else 0,
        )
        return await self._repo.conditional_update(owner_id, task_id, patch, expected_status=task.status)

    async def delete(self, owner_id: str, task_id: str) -> None:
        task = await self._repo.get(owner_id, task_id)
        ensure_can_delete(task)

        # Not transactional: if the record delete fails after the blob is
        # gone, the task stays DONE with a dangling audio_key.
        if task.audio_key:
            try:
                await self._blobs.delete(task.audio_key)
            except Exception as e:
                raise ExternalServiceError("Could not delete the task's audio.", cause=e) from e

        await self._repo.delete(owner_id, task_id, expected_status=TaskStatus.DONE)
        logger.info("Task deleted owner=%s task=%s", owner_id, task_id)

    # ---- audio ----

    async def attach_audio(self, owner_id: str, task_id: str, data: bytes, content_type: str) -> Task:
        if not data:
            raise ValidationError("Audio payload is empty.")

        task = await self._repo.get(owner_id, task_id)
        ensure_not_archived(task)

        key = audio_key_for(owner_id, task_id, content_type)
        try:
            await self._blobs.put(key, data, content_type)
        except Exception as e:
            raise ExternalServiceError("Could not store audio.", cause=e) from e

        patch = TaskPatch(fields={"audio_key": key, "updated_at": self._clock.now()})
        updated = await self._repo.conditional_update(owner_id, task_id, patch, expected_status=task.status)

        if task.audio_key and task.audio_key != key:
            try:
                await self._blobs.delete(task.audio_key)
            except Exception:
                logger.warning("Could not delete replaced audio key=%s", task.audio_key, exc_info=True)
        return updated

    async def get_audio_url(self, owner_id: str, task_id: str) -> str:
        task = await self._repo.get(owner_id, task_id)
        if not task.audio_key:
            raise NotFoundError("No audio for this task.")
        return self._blobs.signed_read_url(task.audio_key, self._audio_url_ttl)

    async def get_audio(self, owner_id: str, task_id: str) -> bytes:
        task = await self._repo.get(owner_id, task_id)
        if not task.audio_key:
            raise NotFoundError("No audio for this task.")
        try:
            return await self._blobs.get(task.audio_key)
        except NotFoundError:
            raise
        except Exception as e:
            raise ExternalServiceError("Could not load audio.", cause=e) from e

    async def transcribe(self, owner_id: str, task_id: str) -> str:
        task = await self._repo.get(owner_id, task_id)
        ensure_not_archived(task)
        if not task.audio_key:
            raise PreconditionError("No audio for this task.")
        if self._transcriber is None:
            raise ExternalServiceError("Transcription is not configured.")

        try:
            job_id = await self._transcriber.submit(task.audio_key, self._language_hint)
        except Exception as e:
            raise ExternalServiceError("Could not start transcription.", cause=e) from e

        try:
            text = await self._wait_for_transcript(job_id)
        finally:
            # a job nobody polls any more must not keep running
            await self._release_job(job_id)

        # touch only; status stays as it is
        await self._repo.update(owner_id, task_id, TaskPatch(fields={"updated_at": self._clock.now()}))
        return text

    async def _wait_for_transcript(self, job_id: str) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._transcribe_timeout

        while loop.time() < deadline:
            try:
                job = await self._transcriber.poll(job_id)
            except Exception as e:
                raise ExternalServiceError("Transcription status check failed.", cause=e) from e

            if job.status == TranscriptionJobStatus.COMPLETED:
                if not job.text or not job.text.strip():
                    raise ExternalServiceError("Transcript is empty.")
                return job.text.strip()
            if job.status == TranscriptionJobStatus.FAILED:
                raise ExternalServiceError(job.error or "Transcription failed.")

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._poll_interval, remaining))

        logger.warning("Transcription timed out job=%s after %ss", job_id, self._transcribe_timeout)
        raise TranscriptionTimeoutError(f"Transcription did not finish within {self._transcribe_timeout:g}s.")

    async def _release_job(self, job_id: str) -> None:
        try:
            await self._transcriber.cancel(job_id)
        except Exception:
            logger.warning("Could not cancel transcription job=%s", job_id, exc_info=True)

    # ---- housekeeping ----

    async def sweep(self, owner_id: str) -> SweepResult:
        """Run the time-driven transitions without listing. Used by the background loop."""
        stored = await self._repo.query(owner_id)
        return await self._sweeper.sweep(owner_id, stored, self._clock.now())
