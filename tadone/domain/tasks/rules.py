from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from tadone.domain.common.errors import PreconditionError, ValidationError
from tadone.domain.common.time import ensure_aware, next_midnight, start_of_day
from tadone.domain.tasks.models import AUTO_ARCHIVE_AFTER_DAYS, Task, TaskStatus

MAX_TITLE_LEN = 200
MAX_DESCRIPTION_LEN = 4000

# ---------- time-driven transitions ----------


def is_planned(task: Task, now: datetime) -> bool:
    """TODO task whose due day lies strictly after today."""
    if task.status != TaskStatus.TODO or task.due_date is None:
        return False
    return task.due_date > start_of_day(now).date()


def can_auto_snooze(task: Task, now: datetime) -> bool:
    if task.status != TaskStatus.TODO:
        return False
    if is_planned(task, now):
        return False
    return task.last_touch < start_of_day(now)


def can_auto_unsnooze(task: Task, now: datetime) -> bool:
    ensure_aware(now)
    if task.status != TaskStatus.SNOOZE or task.snoozed_until is None:
        return False
    return task.snoozed_until <= now


def can_auto_archive(task: Task, now: datetime) -> bool:
    ensure_aware(now)
    if task.status != TaskStatus.DONE:
        return False
    done_at = task.done_at or task.last_touch
    return done_at <= now - timedelta(days=AUTO_ARCHIVE_AFTER_DAYS)


def snooze_horizon(now: datetime) -> datetime:
    # every snooze, manual or automatic, ends at the same instant
    return next_midnight(now)


def should_undo_snooze(task: Task, now: datetime) -> bool:
    """Reactivating a snooze that has not elapsed yet takes the count back."""
    return (
        task.status == TaskStatus.SNOOZE
        and task.snoozed_until is not None
        and task.snoozed_until > now
    )


# ---------- command guards ----------


def ensure_not_archived(task: Task) -> None:
    if task.status == TaskStatus.ARCHIVED:
        raise PreconditionError("Task is archived. Reactivate it first.")


def ensure_can_snooze(task: Task) -> None:
    if task.status in (TaskStatus.ARCHIVED, TaskStatus.DONE):
        raise PreconditionError(f"A {task.status.value} task cannot be snoozed.")


def ensure_can_reactivate(task: Task) -> None:
    if task.status == TaskStatus.TODO:
        raise PreconditionError("Task is already active.")


def ensure_can_delete(task: Task) -> None:
    if task.status != TaskStatus.DONE:
        raise PreconditionError(f"Task must be DONE before deleting (is {task.status.value}).")


# ---------- input validation ----------


def validate_title(title: Optional[str]) -> str:
    if not title or not title.strip():
        raise ValidationError("Title is required.")
    title = title.strip()
    if len(title) > MAX_TITLE_LEN:
        raise ValidationError(f"Title is too long (max {MAX_TITLE_LEN} chars).")
    return title


def validate_description(description: Optional[str]) -> str:
    description = (description or "").strip()
    if len(description) > MAX_DESCRIPTION_LEN:
        raise ValidationError(f"Description is too long (max {MAX_DESCRIPTION_LEN} chars).")
    return description


def parse_due_date(raw, tz=None) -> Optional[date]:
    """
    Accepts:
      - None / ""                 -> no due date
      - date                      -> as is
      - datetime                  -> its calendar day (in tz when given)
      - "YYYY-MM-DD"
      - ISO datetime string       -> its calendar day (in tz when given)
    Time of day is always dropped.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return _local_day(raw, tz)
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass

    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid due date: {text!r}") from None
    return _local_day(dt, tz)


def _local_day(dt: datetime, tz) -> date:
    if tz is not None and dt.tzinfo is not None:
        dt = dt.astimezone(tz)
    return dt.date()


def parse_status(raw: Optional[str]) -> TaskStatus:
    if raw is None or not str(raw).strip():
        return TaskStatus.TODO
    try:
        return TaskStatus(str(raw).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in TaskStatus)
        raise ValidationError(f"Invalid status {raw!r}. Allowed: {allowed}.") from None


def append_transcript(description: str, transcript: str) -> str:
    marked = f"===> {transcript.strip()} <==="
    description = (description or "").rstrip()
    return f"{description}\n{marked}" if description else marked
