from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Optional, Sequence

from tadone.domain.tasks.models import Task, TaskStatus
from tadone.domain.tasks.rules import is_planned
from tadone.ui.telegram.texts.tasks import EMPTY_VIEW, VIEW_TITLES


def _fmt_dt(dt: Optional[datetime], tz=None) -> str:
    if dt is None:
        return "-"
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt.strftime("%d.%m.%Y %H:%M")


def render_list_text(view: TaskStatus, tasks: Sequence[Task]) -> str:
    title = VIEW_TITLES[view.value]
    if not tasks:
        return f"<b>{title}</b>\n{EMPTY_VIEW[view.value]}"
    return f"<b>{title}</b> ({len(tasks)})"


def render_task_detail(task: Task, now: datetime) -> str:
    tz = now.tzinfo
    lines = [f"<b>{escape(task.title)}</b>"]
    if task.description:
        lines.append(escape(task.description))
    lines.append("")

    status = VIEW_TITLES[task.status.value]
    if is_planned(task, now):
        status += " (planned)"
    lines.append(f"Status: {status}")
    if task.due_date:
        lines.append(f"Due: {task.due_date.strftime('%d.%m.%Y')}")
    if task.status == TaskStatus.SNOOZE:
        lines.append(f"Snoozed until: {_fmt_dt(task.snoozed_until, tz)}")
    lines.append(f"Snoozes: {task.snooze_count}")
    if task.done_at:
        lines.append(f"Done: {_fmt_dt(task.done_at, tz)}")
    if task.archived_at:
        lines.append(f"Archived: {_fmt_dt(task.archived_at, tz)}")
    if task.audio_key:
        lines.append("Voice note: yes")
    lines.append(f"Created: {_fmt_dt(task.created_at, tz)}")
    return "\n".join(lines)


def parse_add_args(text: str) -> tuple[str, str, Optional[str]]:
    """
    "title | description | YYYY-MM-DD" -> (title, description, due)
    Description and due date are optional.
    """
    parts = [p.strip() for p in (text or "").split("|")]
    title = parts[0] if parts else ""
    description = parts[1] if len(parts) > 1 else ""
    due = parts[2] if len(parts) > 2 and parts[2] else None
    return title, description, due


def render_audio_link(url: str) -> str:
    return f'<a href="{escape(url, quote=True)}">Download link</a> (valid for a few minutes)'


def render_transcript_not_saved(reason: str, transcript: str) -> str:
    return f"{escape(reason)}\nTranscript:\n{escape(transcript)}"
