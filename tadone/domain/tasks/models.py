from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


class TaskStatus(str, Enum):
    TODO = "TODO"
    SNOOZE = "SNOOZE"
    DONE = "DONE"
    ARCHIVED = "ARCHIVED"
    # accepted on create, no transition rules
    INACTIVE = "INACTIVE"


AUTO_ARCHIVE_AFTER_DAYS = 7


@dataclass(frozen=True)
class Task:
    owner_id: str
    task_id: str
    title: str
    description: str
    status: TaskStatus
    created_at: datetime
    updated_at: Optional[datetime]
    due_date: Optional[date] = None
    snooze_count: int = 0
    snoozed_until: Optional[datetime] = None
    done_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    audio_key: Optional[str] = None

    @property
    def last_touch(self) -> datetime:
        return self.updated_at or self.created_at

    def with_changes(self, **changes: Any) -> "Task":
        return replace(self, **changes)


@dataclass(frozen=True)
class CreateTaskRequest:
    owner_id: str
    title: str
    description: str = ""
    # raw user input, normalised by rules.parse_due_date
    due_date: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class EditTaskRequest:
    owner_id: str
    task_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None


@dataclass(frozen=True)
class TaskPatch:
    """
    Field changes for one store update.

    `fields` holds column -> new value (None clears the column).
    `snooze_count_delta` is applied by the store, floored at 0.
    """
    fields: Dict[str, Any] = field(default_factory=dict)
    snooze_count_delta: int = 0

    def apply(self, task: Task) -> Task:
        changed = task.with_changes(**self.fields)
        if self.snooze_count_delta:
            changed = changed.with_changes(snooze_count=max(0, task.snooze_count + self.snooze_count_delta))
        return changed


class TranscriptionJobStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class TranscriptionJob:
    job_id: str
    status: TranscriptionJobStatus
    text: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SweepResult:
    tasks: list[Task]
    unsnoozed: int = 0
    snoozed: int = 0
    archived: int = 0
    failed_writes: int = 0

    @property
    def changed(self) -> int:
        return self.unsnoozed + self.snoozed + self.archived
