from __future__ import annotations

from typing import Sequence

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from tadone.domain.tasks.models import Task, TaskStatus


def tasks_list_kb(tasks: Sequence[Task]) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    for t in tasks:
        title = t.title or "(empty)"
        if t.audio_key:
            title = f"🎙️ {title}"
        kb.button(text=title[:60], callback_data=f"t:open:{t.task_id}")
    kb.button(text="⬅️ Menu", callback_data="nav:menu")
    kb.adjust(1)
    return kb.as_markup()


def task_actions_kb(task: Task) -> InlineKeyboardMarkup:
    """Buttons only for the actions the task's status allows."""
    kb = InlineKeyboardBuilder()
    tid = task.task_id
    status = task.status

    if status != TaskStatus.ARCHIVED:
        if status != TaskStatus.DONE:
            kb.button(text="✅ Done", callback_data=f"t:done:{tid}")
        if status not in (TaskStatus.DONE, TaskStatus.SNOOZE):
            kb.button(text="😴 Snooze", callback_data=f"t:snooze:{tid}")
        kb.button(text="✏️ Title", callback_data=f"t:title:{tid}")
        kb.button(text="📝 Description", callback_data=f"t:desc:{tid}")
        kb.button(text="📅 Due", callback_data=f"t:due:{tid}")
        kb.button(text="🎙️ Record", callback_data=f"t:voice:{tid}")
        if task.audio_key:
            kb.button(text="💬 Transcribe", callback_data=f"t:tr:{tid}")

    if task.audio_key:
        kb.button(text="▶️ Play", callback_data=f"t:play:{tid}")
    if status != TaskStatus.TODO:
        kb.button(text="↩️ Reactivate", callback_data=f"t:react:{tid}")
    if status == TaskStatus.DONE:
        kb.button(text="🗑️ Delete", callback_data=f"t:del:{tid}")

    kb.button(text="⬅️ Back", callback_data=f"tv:{status.value}")
    kb.adjust(2)
    return kb.as_markup()


def delete_confirm_kb(task_id: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="Yes, delete", callback_data=f"t:delok:{task_id}")
    kb.button(text="No", callback_data=f"t:open:{task_id}")
    kb.adjust(2)
    return kb.as_markup()
