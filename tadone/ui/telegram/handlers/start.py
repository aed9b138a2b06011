from __future__ import annotations

from aiogram import Router, F
from aiogram.filters import CommandStart, Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from tadone.domain.tasks.models import TaskStatus
from tadone.domain.tasks.service import TaskService
from tadone.ui.telegram.handlers.tasks import show_list
from tadone.ui.telegram.utils.navigation import go_to_main_menu

router = Router()


async def send_mainmenu(message: Message, task_service: TaskService, owner_id: str) -> None:
    """
    Show main menu and right after it the open tasks (the read sweeps them).
    """
    await go_to_main_menu(message)
    await show_list(message, task_service, owner_id, TaskStatus.TODO, prefer_edit=False)


@router.message(CommandStart())
async def start_cmd(message: Message, state: FSMContext, task_service: TaskService, owner_id: str):
    await state.clear()
    await send_mainmenu(message, task_service, owner_id)


@router.message(Command("menu"))
async def menu_cmd(message: Message, state: FSMContext, task_service: TaskService, owner_id: str):
    await state.clear()
    await send_mainmenu(message, task_service, owner_id)


@router.callback_query(F.data == "nav:menu")
async def menu_cb(cb: CallbackQuery, state: FSMContext):
    await cb.answer()
    await go_to_main_menu(cb.message, state)
