"""
Tests for the read-time sweep (auto-unsnooze, auto-snooze, auto-archive).
"""
from __future__ import annotations

import asyncio
from datetime import timedelta

from tadone.domain.common.time import next_midnight, start_of_day
from tadone.domain.tasks.models import TaskStatus
from tadone.domain.tasks.sweep import TaskSweeper, sweep_owner

from fakes import NOW, OWNER, FakeTaskRepo, make_task

YESTERDAY = NOW - timedelta(days=1)


def _by_id(tasks):
    return {t.task_id: t for t in tasks}


def test_stale_todo_is_auto_snoozed_until_next_midnight():
    async def run():
        repo = FakeTaskRepo([make_task("a", updated_at=YESTERDAY, snooze_count=2)])
        result = await sweep_owner(repo, OWNER, NOW)

        task = _by_id(result.tasks)["a"]
        assert task.status == TaskStatus.SNOOZE
        assert task.snoozed_until == next_midnight(NOW)
        assert task.snooze_count == 3
        assert task.updated_at == NOW
        assert result.snoozed == 1
        # the view matches what was written
        assert repo.rows[(OWNER, "a")] == task

    asyncio.run(run())


def test_task_touched_today_is_left_alone():
    async def run():
        touched = start_of_day(NOW) + timedelta(hours=1)
        repo = FakeTaskRepo([make_task("a", updated_at=touched)])
        result = await sweep_owner(repo, OWNER, NOW)

        assert _by_id(result.tasks)["a"].status == TaskStatus.TODO
        assert result.changed == 0
        assert repo.writes == []

    asyncio.run(run())


def test_planned_task_is_not_snoozed():
    async def run():
        repo = FakeTaskRepo([make_task("a", updated_at=YESTERDAY, due_date=NOW.date() + timedelta(days=2))])
        result = await sweep_owner(repo, OWNER, NOW)

        assert _by_id(result.tasks)["a"].status == TaskStatus.TODO
        assert repo.writes == []

    asyncio.run(run())


def test_expired_snooze_returns_to_todo_and_keeps_count():
    async def run():
        snoozed = make_task(
            "a",
            status=TaskStatus.SNOOZE,
            snoozed_until=start_of_day(NOW),
            snooze_count=4,
            updated_at=YESTERDAY,
        )
        repo = FakeTaskRepo([snoozed])
        result = await sweep_owner(repo, OWNER, NOW)

        task = _by_id(result.tasks)["a"]
        # unsnooze touches the task, so the snooze pass does not fire again
        assert task.status == TaskStatus.TODO
        assert task.snoozed_until is None
        assert task.snooze_count == 4
        assert result.unsnoozed == 1
        assert result.snoozed == 0

    asyncio.run(run())


def test_pending_snooze_stays_snoozed():
    async def run():
        snoozed = make_task("a", status=TaskStatus.SNOOZE, snoozed_until=next_midnight(NOW), snooze_count=1)
        repo = FakeTaskRepo([snoozed])
        result = await sweep_owner(repo, OWNER, NOW)

        assert _by_id(result.tasks)["a"] == snoozed
        assert repo.writes == []

    asyncio.run(run())


def test_old_done_task_is_archived():
    async def run():
        repo = FakeTaskRepo(
            [
                make_task("old", status=TaskStatus.DONE, done_at=NOW - timedelta(days=8)),
                make_task("new", status=TaskStatus.DONE, done_at=NOW - timedelta(days=6)),
            ]
        )
        result = await sweep_owner(repo, OWNER, NOW)
        tasks = _by_id(result.tasks)

        assert tasks["old"].status == TaskStatus.ARCHIVED
        assert tasks["old"].archived_at == NOW
        assert tasks["old"].done_at == NOW - timedelta(days=8)
        assert tasks["new"].status == TaskStatus.DONE
        assert result.archived == 1

    asyncio.run(run())


def test_inactive_and_archived_tasks_are_untouched():
    async def run():
        long_ago = NOW - timedelta(days=60)
        repo = FakeTaskRepo(
            [
                make_task("i", status=TaskStatus.INACTIVE, updated_at=long_ago),
                make_task("x", status=TaskStatus.ARCHIVED, updated_at=long_ago, archived_at=long_ago),
            ]
        )
        result = await sweep_owner(repo, OWNER, NOW)

        assert result.changed == 0
        assert repo.writes == []

    asyncio.run(run())


def test_sweep_is_idempotent():
    async def run():
        repo = FakeTaskRepo(
            [
                make_task("a", updated_at=YESTERDAY),
                make_task("b", status=TaskStatus.SNOOZE, snoozed_until=YESTERDAY, updated_at=YESTERDAY),
                make_task("c", status=TaskStatus.DONE, done_at=NOW - timedelta(days=9)),
            ]
        )
        first = await sweep_owner(repo, OWNER, NOW)
        assert first.changed == 3
        writes_after_first = len(repo.writes)

        second = await sweep_owner(repo, OWNER, NOW)
        assert second.changed == 0
        assert len(repo.writes) == writes_after_first
        assert _by_id(second.tasks) == _by_id(first.tasks)

    asyncio.run(run())


def test_snoozed_until_set_only_while_snoozed():
    async def run():
        repo = FakeTaskRepo(
            [
                make_task("a", updated_at=YESTERDAY),
                make_task("b", status=TaskStatus.SNOOZE, snoozed_until=YESTERDAY, updated_at=YESTERDAY),
                make_task("c", status=TaskStatus.SNOOZE, snoozed_until=next_midnight(NOW)),
                make_task("d", status=TaskStatus.DONE, done_at=NOW - timedelta(days=9)),
            ]
        )
        result = await sweep_owner(repo, OWNER, NOW)

        for task in result.tasks:
            assert (task.snoozed_until is not None) == (task.status == TaskStatus.SNOOZE), task.task_id
            assert task.snooze_count >= 0

    asyncio.run(run())


def test_failed_write_keeps_computed_view():
    async def run():
        repo = FakeTaskRepo([make_task("a", updated_at=YESTERDAY), make_task("b", updated_at=YESTERDAY)])
        repo.fail_updates_for.add("a")

        result = await TaskSweeper(repo).sweep(OWNER, await repo.query(OWNER), NOW)
        tasks = _by_id(result.tasks)

        assert tasks["a"].status == TaskStatus.SNOOZE
        assert tasks["b"].status == TaskStatus.SNOOZE
        assert result.failed_writes == 1
        # the failed row is still stale in the store and gets corrected next time
        assert repo.rows[(OWNER, "a")].status == TaskStatus.TODO
        assert repo.rows[(OWNER, "b")].status == TaskStatus.SNOOZE

    asyncio.run(run())


def test_sweep_only_sees_owner_tasks():
    async def run():
        repo = FakeTaskRepo(
            [
                make_task("mine", updated_at=YESTERDAY),
                make_task("theirs", owner_id="owner-2", updated_at=YESTERDAY),
            ]
        )
        result = await sweep_owner(repo, OWNER, NOW)

        assert [t.task_id for t in result.tasks] == ["mine"]
        assert repo.rows[("owner-2", "theirs")].status == TaskStatus.TODO

    asyncio.run(run())
