"""
In-memory stand-ins for the task ports.

FakeTaskRepo follows the sqlite repo's contract (conditional writes raise
ConflictError / NotFoundError) so service and sweep tests run without a DB.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from tadone.domain.common.errors import ConflictError, NotFoundError
from tadone.domain.tasks.models import Task, TaskPatch, TaskStatus, TranscriptionJob, TranscriptionJobStatus
from tadone.domain.tasks.ports import BlobStore, Clock, IdGenerator, TaskRepository, TranscriptionService


class FakeClock(Clock):
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


class SeqIds(IdGenerator):
    def __init__(self, prefix: str = "task") -> None:
        self._prefix = prefix
        self._n = 0

    def new_id(self) -> str:
        self._n += 1
        return f"{self._prefix}-{self._n}"


class FakeTaskRepo(TaskRepository):
    def __init__(self, tasks: Sequence[Task] = ()) -> None:
        self.rows: dict[tuple[str, str], Task] = {(t.owner_id, t.task_id): t for t in tasks}
        self.writes: list[tuple[str, str, str]] = []  # (op, owner_id, task_id)
        self.fail_updates_for: set[str] = set()
        # status forced into the row right before the next conditional write
        self.race_status: Optional[TaskStatus] = None

    def seed(self, *tasks: Task) -> None:
        for t in tasks:
            self.rows[(t.owner_id, t.task_id)] = t

    async def query(self, owner_id: str) -> Sequence[Task]:
        return [t for (o, _), t in self.rows.items() if o == owner_id]

    async def get(self, owner_id: str, task_id: str) -> Task:
        try:
            return self.rows[(owner_id, task_id)]
        except KeyError:
            raise NotFoundError("Task not found.") from None

    async def put(self, task: Task) -> None:
        self.writes.append(("put", task.owner_id, task.task_id))
        self.rows[(task.owner_id, task.task_id)] = task

    async def update(self, owner_id: str, task_id: str, patch: TaskPatch) -> None:
        if task_id in self.fail_updates_for:
            raise RuntimeError(f"store unavailable for {task_id}")
        task = await self.get(owner_id, task_id)
        self.writes.append(("update", owner_id, task_id))
        self.rows[(owner_id, task_id)] = patch.apply(task)

    async def conditional_update(
        self,
        owner_id: str,
        task_id: str,
        patch: TaskPatch,
        expected_status: TaskStatus,
    ) -> Task:
        task = await self.get(owner_id, task_id)
        if self.race_status is not None:
            task = task.with_changes(status=self.race_status)
            self.rows[(owner_id, task_id)] = task
            self.race_status = None
        if task.status != expected_status:
            raise ConflictError("Task changed in the meantime.")
        self.writes.append(("conditional_update", owner_id, task_id))
        updated = patch.apply(task)
        self.rows[(owner_id, task_id)] = updated
        return updated

    async def delete(self, owner_id: str, task_id: str, expected_status: Optional[TaskStatus] = None) -> None:
        task = await self.get(owner_id, task_id)
        if expected_status is not None and task.status != expected_status:
            raise ConflictError("Task changed in the meantime.")
        self.writes.append(("delete", owner_id, task_id))
        del self.rows[(owner_id, task_id)]


class FakeBlobStore(BlobStore):
    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.fail_delete = False

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        self.blobs[key] = (data, content_type)

    async def get(self, key: str) -> bytes:
        try:
            return self.blobs[key][0]
        except KeyError:
            raise NotFoundError("Audio file not found.") from None

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise OSError("blob backend down")
        self.deleted.append(key)
        self.blobs.pop(key, None)

    def signed_read_url(self, key: str, ttl_seconds: int) -> str:
        return f"https://blobs.test/{key}?ttl={ttl_seconds}"


class ScriptedTranscriber(TranscriptionService):
    """Answers polls from a script; the last entry repeats."""

    def __init__(self, script: Sequence[TranscriptionJob]) -> None:
        self._script = list(script)
        self.submitted: list[tuple[str, Optional[str]]] = []
        self.polls = 0
        self.cancelled: list[str] = []

    async def cancel(self, job_id: str) -> None:
        self.cancelled.append(job_id)

    async def submit(self, audio_ref: str, language_hint: Optional[str]) -> str:
        self.submitted.append((audio_ref, language_hint))
        return "job-1"

    async def poll(self, job_id: str) -> TranscriptionJob:
        self.polls += 1
        if len(self._script) > 1:
            return self._script.pop(0)
        return self._script[0]


def job(status: TranscriptionJobStatus, text: Optional[str] = None, error: Optional[str] = None) -> TranscriptionJob:
    return TranscriptionJob(job_id="job-1", status=status, text=text, error=error)


TZ = ZoneInfo("Europe/Helsinki")
# Tuesday afternoon, well away from DST switches
NOW = datetime(2026, 3, 10, 14, 30, tzinfo=TZ)
OWNER = "owner-1"


def make_task(task_id: str = "t1", **overrides) -> Task:
    fields = dict(
        owner_id=OWNER,
        task_id=task_id,
        title=f"Task {task_id}",
        description="",
        status=TaskStatus.TODO,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return Task(**fields)
