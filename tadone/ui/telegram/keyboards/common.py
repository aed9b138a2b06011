from __future__ import annotations

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from tadone.domain.tasks.models import TaskStatus
from tadone.ui.telegram.texts.tasks import VIEW_TITLES


def main_menu_kb() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    for status in (TaskStatus.TODO, TaskStatus.SNOOZE, TaskStatus.DONE, TaskStatus.ARCHIVED):
        kb.button(text=VIEW_TITLES[status.value], callback_data=f"tv:{status.value}")
    kb.button(text="➕ Add", callback_data="t:add")
    kb.adjust(2, 2, 1)
    return kb.as_markup()


def cancel_kb() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="Cancel", callback_data="cancel")
    return kb.as_markup()
