from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from tadone.domain.tasks.models import SweepResult, Task, TaskPatch, TaskStatus
from tadone.domain.tasks.ports import TaskRepository
from tadone.domain.tasks.rules import (
    can_auto_archive,
    can_auto_snooze,
    can_auto_unsnooze,
    snooze_horizon,
)

logger = logging.getLogger(__name__)

Guard = Callable[[Task, datetime], bool]
PatchFn = Callable[[Task, datetime], TaskPatch]


def unsnooze_patch(task: Task, now: datetime) -> TaskPatch:
    return TaskPatch(fields={"status": TaskStatus.TODO, "snoozed_until": None, "updated_at": now})


def auto_snooze_patch(task: Task, now: datetime) -> TaskPatch:
    return TaskPatch(
        fields={"status": TaskStatus.SNOOZE, "snoozed_until": snooze_horizon(now), "updated_at": now},
        snooze_count_delta=1,
    )


def archive_patch(task: Task, now: datetime) -> TaskPatch:
    return TaskPatch(fields={"status": TaskStatus.ARCHIVED, "archived_at": now, "updated_at": now})


# order matters: each pass sees the output of the previous one
PASSES: tuple[tuple[str, Guard, PatchFn], ...] = (
    ("unsnoozed", can_auto_unsnooze, unsnooze_patch),
    ("snoozed", can_auto_snooze, auto_snooze_patch),
    ("archived", can_auto_archive, archive_patch),
)


class TaskSweeper:
    """
    Read-repair for time-driven transitions.

    Computes every eligible automatic transition for an owner's task set,
    writes the corrections back unconditionally and returns the corrected
    set without re-reading. Write failures are logged and counted; the
    returned view still carries the computed state and the next read will
    compute the same correction again.
    """

    def __init__(self, repo: TaskRepository) -> None:
        self._repo = repo

    async def sweep(self, owner_id: str, tasks: Sequence[Task], now: datetime) -> SweepResult:
        current = list(tasks)
        counts = {name: 0 for name, _, _ in PASSES}
        failed = 0

        for name, guard, make_patch in PASSES:
            current, fired, pass_failed = await self._run_pass(owner_id, current, now, guard, make_patch)
            counts[name] = fired
            failed += pass_failed

        result = SweepResult(tasks=current, failed_writes=failed, **counts)
        if result.changed:
            logger.info(
                "Sweep owner=%s unsnoozed=%s snoozed=%s archived=%s failed_writes=%s",
                owner_id,
                result.unsnoozed,
                result.snoozed,
                result.archived,
                failed,
            )
        return result

    async def _run_pass(
        self,
        owner_id: str,
        tasks: list[Task],
        now: datetime,
        guard: Guard,
        make_patch: PatchFn,
    ) -> tuple[list[Task], int, int]:
        out: list[Task] = []
        writes = []
        touched: list[Task] = []

        for task in tasks:
            if not guard(task, now):
                out.append(task)
                continue
            patch = make_patch(task, now)
            writes.append(self._repo.update(owner_id, task.task_id, patch))
            touched.append(task)
            out.append(patch.apply(task))

        if not writes:
            return out, 0, 0

        results = await asyncio.gather(*writes, return_exceptions=True)
        failed = 0
        for task, res in zip(touched, results):
            if isinstance(res, Exception):
                failed += 1
                logger.warning(
                    "Sweep write failed owner=%s task=%s status=%s",
                    owner_id,
                    task.task_id,
                    task.status.value,
                    exc_info=res,
                )
        return out, len(writes), failed


async def sweep_owner(
    repo: TaskRepository,
    owner_id: str,
    now: datetime,
    sweeper: Optional[TaskSweeper] = None,
) -> SweepResult:
    sweeper = sweeper or TaskSweeper(repo)
    tasks = await repo.query(owner_id)
    return await sweeper.sweep(owner_id, tasks, now)
