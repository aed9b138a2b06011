from __future__ import annotations

import logging
from html import escape

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from tadone.domain.common.errors import DomainError, ValidationError
from tadone.domain.tasks.models import CreateTaskRequest, EditTaskRequest, Task, TaskStatus
from tadone.domain.tasks.rules import is_planned, parse_status
from tadone.domain.tasks.service import TaskService
from tadone.infra.clock.system_clock import SystemClock
from tadone.ui.telegram.keyboards.common import cancel_kb, main_menu_kb
from tadone.ui.telegram.keyboards.tasks import delete_confirm_kb, task_actions_kb, tasks_list_kb
from tadone.ui.telegram.states.tasks import TasksFlow
from tadone.ui.telegram.texts import tasks as texts
from tadone.ui.telegram.utils.render import parse_add_args, render_list_text, render_task_detail

logger = logging.getLogger(__name__)

router = Router()


def _task_id(cb: CallbackQuery) -> str:
    # t:<action>:<task_id>
    return (cb.data or "").split(":", 2)[-1]


async def _show(target: Message, text: str, markup, prefer_edit: bool) -> None:
    """
    prefer_edit=True: edit the message the button belongs to (callback UX).
    prefer_edit=False: send a new message (command UX).
    """
    if prefer_edit:
        try:
            await target.edit_text(text, reply_markup=markup)
            return
        except Exception:
            # old message, same content etc.: fall back to a new one
            logger.debug("edit_text failed, sending a new message", exc_info=True)
    await target.answer(text, reply_markup=markup)


async def show_list(
    target: Message,
    task_service: TaskService,
    owner_id: str,
    view: TaskStatus,
    prefer_edit: bool,
) -> None:
    tasks = await task_service.list_tasks(owner_id, view)
    await _show(target, render_list_text(view, tasks), tasks_list_kb(tasks), prefer_edit)


async def show_task(target: Message, task: Task, clock: SystemClock, prefer_edit: bool) -> None:
    await _show(target, render_task_detail(task, clock.now()), task_actions_kb(task), prefer_edit)


# ---------- lists ----------


@router.message(Command("tasks"))
async def tasks_cmd(message: Message, command: CommandObject, task_service: TaskService, owner_id: str):
    try:
        view = parse_status(command.args or "TODO")
    except ValidationError as e:
        await message.answer(escape(str(e)))
        return
    await show_list(message, task_service, owner_id, view, prefer_edit=False)


@router.callback_query(F.data.startswith("tv:"))
async def view_cb(cb: CallbackQuery, task_service: TaskService, owner_id: str):
    await cb.answer()
    view = parse_status((cb.data or "").split(":", 1)[-1])
    await show_list(cb.message, task_service, owner_id, view, prefer_edit=True)


@router.callback_query(F.data.startswith("t:open:"))
async def open_cb(cb: CallbackQuery, state: FSMContext, task_service: TaskService, clock: SystemClock, owner_id: str):
    await cb.answer()
    await state.clear()
    task = await task_service.get_task(owner_id, _task_id(cb))
    await show_task(cb.message, task, clock, prefer_edit=True)


# ---------- create ----------


async def _create(message: Message, task_service: TaskService, owner_id: str, raw: str) -> None:
    title, description, due = parse_add_args(raw)
    task = await task_service.create(
        CreateTaskRequest(owner_id=owner_id, title=title, description=description, due_date=due)
    )
    await message.answer(texts.CREATED)
    await show_list(message, task_service, owner_id, task.status, prefer_edit=False)


@router.message(Command("add"))
async def add_cmd(message: Message, command: CommandObject, state: FSMContext, task_service: TaskService, owner_id: str):
    if command.args and command.args.strip():
        await state.clear()
        await _create(message, task_service, owner_id, command.args)
        return

    await state.set_state(TasksFlow.add_title)
    await message.answer(texts.ADD_PROMPT, reply_markup=cancel_kb())


@router.callback_query(F.data == "t:add")
async def add_cb(cb: CallbackQuery, state: FSMContext):
    await cb.answer()
    await state.set_state(TasksFlow.add_title)
    await cb.message.answer(texts.ADD_PROMPT, reply_markup=cancel_kb())


@router.message(TasksFlow.add_title, F.text)
async def add_title(message: Message, state: FSMContext, task_service: TaskService, owner_id: str):
    raw = (message.text or "").strip()
    if not raw:
        await message.answer(texts.EMPTY_TITLE)
        return
    try:
        await _create(message, task_service, owner_id, raw)
    except ValidationError as e:
        # stay in the flow so the user can fix the input
        await message.answer(f"{escape(str(e))}\n{escape(texts.ADD_PROMPT)}", reply_markup=cancel_kb())
        return
    await state.clear()


# ---------- transitions ----------


@router.callback_query(F.data.startswith("t:snooze:"))
async def snooze_cb(cb: CallbackQuery, task_service: TaskService, clock: SystemClock, owner_id: str):
    task_id = _task_id(cb)
    task = await task_service.get_task(owner_id, task_id)
    # planned tasks are rejected here; the service does not know about planning
    if is_planned(task, clock.now()):
        await cb.answer(texts.PLANNED_NO_SNOOZE, show_alert=True)
        return

    task = await task_service.snooze(owner_id, task_id)
    await cb.answer(texts.SNOOZED)
    await show_task(cb.message, task, clock, prefer_edit=True)


@router.callback_query(F.data.startswith("t:done:"))
async def done_cb(cb: CallbackQuery, task_service: TaskService, clock: SystemClock, owner_id: str):
    task = await task_service.mark_done(owner_id, _task_id(cb))
    await cb.answer(texts.DONE)
    await show_task(cb.message, task, clock, prefer_edit=True)


@router.callback_query(F.data.startswith("t:react:"))
async def reactivate_cb(cb: CallbackQuery, task_service: TaskService, clock: SystemClock, owner_id: str):
    task = await task_service.reactivate(owner_id, _task_id(cb))
    await cb.answer(texts.REACTIVATED)
    await show_task(cb.message, task, clock, prefer_edit=True)


@router.callback_query(F.data.startswith("t:del:"))
async def delete_cb(cb: CallbackQuery):
    await cb.answer()
    await _show(cb.message, texts.DELETE_CONFIRM, delete_confirm_kb(_task_id(cb)), prefer_edit=True)


@router.callback_query(F.data.startswith("t:delok:"))
async def delete_ok_cb(cb: CallbackQuery, task_service: TaskService, owner_id: str):
    await task_service.delete(owner_id, _task_id(cb))
    await cb.answer(texts.DELETED)
    await show_list(cb.message, task_service, owner_id, TaskStatus.DONE, prefer_edit=True)


# ---------- edits ----------

EDIT_FLOWS = {
    "title": (TasksFlow.edit_title, texts.EDIT_TITLE_PROMPT),
    "desc": (TasksFlow.edit_description, texts.EDIT_DESCRIPTION_PROMPT),
    "due": (TasksFlow.edit_due_date, texts.EDIT_DUE_PROMPT),
}


@router.callback_query(F.data.regexp(r"^t:(title|desc|due):"))
async def edit_cb(cb: CallbackQuery, state: FSMContext):
    await cb.answer()
    field = (cb.data or "").split(":")[1]
    flow_state, prompt = EDIT_FLOWS[field]
    await state.update_data(task_id=_task_id(cb))
    await state.set_state(flow_state)
    await cb.message.answer(prompt, reply_markup=cancel_kb())


def _edit_request(owner_id: str, task_id: str, current_state: str, text: str) -> EditTaskRequest:
    if current_state == TasksFlow.edit_title.state:
        return EditTaskRequest(owner_id=owner_id, task_id=task_id, title=text)
    # "-" clears optional fields
    value = "" if text == "-" else text
    if current_state == TasksFlow.edit_description.state:
        return EditTaskRequest(owner_id=owner_id, task_id=task_id, description=value)
    return EditTaskRequest(owner_id=owner_id, task_id=task_id, due_date=value)


@router.message(TasksFlow.edit_title, F.text)
@router.message(TasksFlow.edit_description, F.text)
@router.message(TasksFlow.edit_due_date, F.text)
async def edit_text(
    message: Message,
    state: FSMContext,
    task_service: TaskService,
    clock: SystemClock,
    owner_id: str,
):
    data = await state.get_data()
    task_id = data.get("task_id")
    if not task_id:
        await state.clear()
        await message.answer(texts.SESSION_LOST, reply_markup=main_menu_kb())
        return

    req = _edit_request(owner_id, task_id, await state.get_state(), (message.text or "").strip())
    try:
        task = await task_service.edit(req)
    except ValidationError as e:
        await message.answer(escape(str(e)), reply_markup=cancel_kb())
        return
    except DomainError:
        await state.clear()
        raise

    await state.clear()
    await message.answer(texts.UPDATED)
    await show_task(message, task, clock, prefer_edit=False)
