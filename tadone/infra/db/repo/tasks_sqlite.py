from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Sequence

from tadone.domain.common.errors import ConflictError, NotFoundError
from tadone.domain.common.time import date_from_iso, from_iso, to_iso
from tadone.domain.tasks.models import Task, TaskPatch, TaskStatus
from tadone.domain.tasks.ports import TaskRepository
from tadone.infra.db.connection import Database

logger = logging.getLogger(__name__)

# columns a patch may touch; owner_id, task_id and created_at are immutable
MUTABLE_COLUMNS = frozenset(
    {
        "title",
        "description",
        "status",
        "due_date",
        "snoozed_until",
        "done_at",
        "archived_at",
        "audio_key",
        "updated_at",
    }
)


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class TasksSqliteRepo(TaskRepository):
    def __init__(self, db: Database) -> None:
        self._db = db

    async def query(self, owner_id: str) -> Sequence[Task]:
        rows = await self._db.fetchall(
            "SELECT * FROM tasks WHERE owner_id = ? ORDER BY created_at ASC;",
            (owner_id,),
        )
        return [self._row_to_task(r) for r in rows]

    async def get(self, owner_id: str, task_id: str) -> Task:
        row = await self._db.fetchone(
            "SELECT * FROM tasks WHERE owner_id = ? AND task_id = ?;",
            (owner_id, task_id),
        )
        if not row:
            raise NotFoundError("Task not found.")
        return self._row_to_task(row)

    async def put(self, task: Task) -> None:
        await self._db.execute(
            """
            INSERT OR REPLACE INTO tasks(
              owner_id, task_id, title, description, status, due_date,
              snooze_count, snoozed_until, done_at, archived_at, audio_key,
              created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                task.owner_id,
                task.task_id,
                task.title,
                task.description,
                task.status.value,
                _to_db(task.due_date),
                max(0, task.snooze_count),
                _to_db(task.snoozed_until),
                _to_db(task.done_at),
                _to_db(task.archived_at),
                task.audio_key,
                to_iso(task.created_at),
                _to_db(task.updated_at),
            ),
        )

    async def update(self, owner_id: str, task_id: str, patch: TaskPatch) -> None:
        sets, params = self._patch_sql(patch)
        if not sets:
            return
        n = await self._db.execute(
            f"UPDATE tasks SET {', '.join(sets)} WHERE owner_id = ? AND task_id = ?;",
            (*params, owner_id, task_id),
        )
        if n == 0:
            raise NotFoundError("Task not found.")

    async def conditional_update(
        self,
        owner_id: str,
        task_id: str,
        patch: TaskPatch,
        expected_status: TaskStatus,
    ) -> Task:
        sets, params = self._patch_sql(patch)
        if not sets:
            return await self.get(owner_id, task_id)

        row = await self._db.execute_returning(
            f"""
            UPDATE tasks
            SET {', '.join(sets)}
            WHERE owner_id = ? AND task_id = ? AND status = ?
            RETURNING *;
            """,
            (*params, owner_id, task_id, expected_status.value),
        )
        if row is None:
            await self._raise_missed(owner_id, task_id, expected_status)
        return self._row_to_task(row)

    async def delete(self, owner_id: str, task_id: str, expected_status: Optional[TaskStatus] = None) -> None:
        if expected_status is None:
            n = await self._db.execute(
                "DELETE FROM tasks WHERE owner_id = ? AND task_id = ?;",
                (owner_id, task_id),
            )
            if n == 0:
                raise NotFoundError("Task not found.")
            return

        n = await self._db.execute(
            "DELETE FROM tasks WHERE owner_id = ? AND task_id = ? AND status = ?;",
            (owner_id, task_id, expected_status.value),
        )
        if n == 0:
            await self._raise_missed(owner_id, task_id, expected_status)

    async def _raise_missed(self, owner_id: str, task_id: str, expected_status: TaskStatus) -> None:
        row = await self._db.fetchone(
            "SELECT status FROM tasks WHERE owner_id = ? AND task_id = ?;",
            (owner_id, task_id),
        )
        if not row:
            raise NotFoundError("Task not found.")
        logger.info(
            "Conditional write lost owner=%s task=%s expected=%s actual=%s",
            owner_id,
            task_id,
            expected_status.value,
            row["status"],
        )
        raise ConflictError("Task changed in the meantime. Operation not allowed, try again.")

    @staticmethod
    def _patch_sql(patch: TaskPatch) -> tuple[list[str], list[Any]]:
        sets: list[str] = []
        params: list[Any] = []
        for col, value in patch.fields.items():
            if col not in MUTABLE_COLUMNS:
                raise ValueError(f"column {col!r} cannot be patched")
            sets.append(f"{col} = ?")
            params.append(_to_db(value))
        if patch.snooze_count_delta:
            sets.append("snooze_count = MAX(0, snooze_count + ?)")
            params.append(int(patch.snooze_count_delta))
        return sets, params

    def _row_to_task(self, row) -> Task:
        return Task(
            owner_id=row["owner_id"],
            task_id=row["task_id"],
            title=row["title"],
            description=row["description"] or "",
            status=TaskStatus(row["status"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]) if row["updated_at"] else None,
            due_date=date_from_iso(row["due_date"]) if row["due_date"] else None,
            snooze_count=int(row["snooze_count"] or 0),
            snoozed_until=from_iso(row["snoozed_until"]) if row["snoozed_until"] else None,
            done_at=from_iso(row["done_at"]) if row["done_at"] else None,
            archived_at=from_iso(row["archived_at"]) if row["archived_at"] else None,
            audio_key=row["audio_key"],
        )
