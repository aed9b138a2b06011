from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

from tadone.domain.tasks.models import Task, TaskPatch, TaskStatus, TranscriptionJob


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class IdGenerator(ABC):
    @abstractmethod
    def new_id(self) -> str: ...


class TaskRepository(ABC):
    """
    Key-value task store keyed by (owner_id, task_id).

    conditional_update / delete with expected_status raise ConflictError when
    the persisted status no longer matches, NotFoundError when the row is gone.
    """

    @abstractmethod
    async def query(self, owner_id: str) -> Sequence[Task]: ...

    @abstractmethod
    async def get(self, owner_id: str, task_id: str) -> Task: ...

    @abstractmethod
    async def put(self, task: Task) -> None: ...

    @abstractmethod
    async def update(self, owner_id: str, task_id: str, patch: TaskPatch) -> None: ...

    @abstractmethod
    async def conditional_update(
        self,
        owner_id: str,
        task_id: str,
        patch: TaskPatch,
        expected_status: TaskStatus,
    ) -> Task: ...

    @abstractmethod
    async def delete(self, owner_id: str, task_id: str, expected_status: Optional[TaskStatus] = None) -> None: ...


class BlobStore(ABC):
    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    @abstractmethod
    async def get(self, key: str) -> bytes: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    def signed_read_url(self, key: str, ttl_seconds: int) -> str: ...


class TranscriptionService(ABC):
    @abstractmethod
    async def submit(self, audio_ref: str, language_hint: Optional[str]) -> str: ...

    @abstractmethod
    async def poll(self, job_id: str) -> TranscriptionJob: ...

    @abstractmethod
    async def cancel(self, job_id: str) -> None:
        """Stop and forget a job. No-op for unknown or already reported jobs."""
