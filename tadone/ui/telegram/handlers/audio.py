from __future__ import annotations

import logging

from aiogram import Bot, Router, F
from aiogram.fsm.context import FSMContext
from aiogram.types import BufferedInputFile, CallbackQuery, Message

from tadone.domain.common.errors import TranscriptionTimeoutError, ValidationError
from tadone.domain.tasks.models import EditTaskRequest
from tadone.domain.tasks.rules import append_transcript
from tadone.domain.tasks.service import TaskService
from tadone.infra.clock.system_clock import SystemClock
from tadone.ui.telegram.handlers.tasks import show_task
from tadone.ui.telegram.keyboards.common import cancel_kb, main_menu_kb
from tadone.ui.telegram.states.tasks import TasksFlow
from tadone.ui.telegram.texts import tasks as texts
from tadone.ui.telegram.utils.render import render_audio_link, render_transcript_not_saved

logger = logging.getLogger(__name__)

router = Router()


def _task_id(cb: CallbackQuery) -> str:
    return (cb.data or "").split(":", 2)[-1]


@router.callback_query(F.data.startswith("t:voice:"))
async def voice_cb(cb: CallbackQuery, state: FSMContext):
    await cb.answer()
    await state.update_data(task_id=_task_id(cb))
    await state.set_state(TasksFlow.attach_voice)
    await cb.message.answer(texts.VOICE_PROMPT, reply_markup=cancel_kb())


@router.message(TasksFlow.attach_voice, F.voice | F.audio)
async def voice_received(
    message: Message,
    state: FSMContext,
    bot: Bot,
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

    media = message.voice or message.audio
    content_type = media.mime_type or "audio/ogg"
    buf = await bot.download(media)
    payload = buf.read() if buf else b""

    await state.clear()
    task = await task_service.attach_audio(owner_id, task_id, payload, content_type)
    await message.answer(texts.AUDIO_SAVED)
    await show_task(message, task, clock, prefer_edit=False)


@router.message(TasksFlow.attach_voice)
async def voice_expected(message: Message):
    await message.answer(texts.VOICE_EXPECTED, reply_markup=cancel_kb())


@router.callback_query(F.data.startswith("t:play:"))
async def play_cb(cb: CallbackQuery, task_service: TaskService, owner_id: str):
    await cb.answer()
    task_id = _task_id(cb)
    task = await task_service.get_task(owner_id, task_id)
    payload = await task_service.get_audio(owner_id, task_id)
    url = await task_service.get_audio_url(owner_id, task_id)

    filename = task.audio_key.rsplit("/", 1)[-1]
    file = BufferedInputFile(payload, filename=filename)
    if filename.endswith(".ogg"):
        await cb.message.answer_voice(file, caption=task.title[:200])
    else:
        await cb.message.answer_audio(file, caption=task.title[:200])
    await cb.message.answer(render_audio_link(url))


@router.callback_query(F.data.startswith("t:tr:"))
async def transcribe_cb(cb: CallbackQuery, task_service: TaskService, clock: SystemClock, owner_id: str):
    await cb.answer(texts.TRANSCRIBING)
    task_id = _task_id(cb)

    try:
        transcript = await task_service.transcribe(owner_id, task_id)
    except TranscriptionTimeoutError:
        logger.info("Transcription timed out owner=%s task=%s", owner_id, task_id)
        await cb.message.answer(texts.TRANSCRIBE_TIMEOUT)
        return

    task = await task_service.get_task(owner_id, task_id)
    try:
        task = await task_service.edit(
            EditTaskRequest(
                owner_id=owner_id,
                task_id=task_id,
                description=append_transcript(task.description, transcript),
            )
        )
    except ValidationError as e:
        # description would overflow: hand the text to the user instead of dropping it
        await cb.message.answer(render_transcript_not_saved(str(e), transcript))
        return
    await cb.message.answer(texts.TRANSCRIPT_ADDED)
    await show_task(cb.message, task, clock, prefer_edit=False)
