from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import replace
from html import escape
from pathlib import Path

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import ExceptionTypeFilter
from aiogram.types import ErrorEvent

from tadone.config import Settings, load_settings
from tadone.domain.common.errors import ConflictError, DomainError, ExternalServiceError
from tadone.domain.common.time import to_iso
from tadone.domain.tasks.service import TaskService
from tadone.infra.blob.fs_blob_store import FsBlobStore
from tadone.infra.clock.system_clock import SystemClock
from tadone.infra.db.connection import Database
from tadone.infra.db.repo.tasks_sqlite import TasksSqliteRepo
from tadone.infra.db.schema_version import apply_migrations
from tadone.infra.ids.uuid_gen import UuidGenerator
from tadone.infra.scheduler.loop import SweepLoop, SweepLoopConfig
from tadone.infra.transcription.openai_transcriber import OpenAITranscriptionService
from tadone.logging_setup import setup_logging
from tadone.ui.telegram.handlers.audio import router as audio_router
from tadone.ui.telegram.handlers.cancel import router as cancel_router
from tadone.ui.telegram.handlers.start import router as start_router
from tadone.ui.telegram.handlers.tasks import router as tasks_router
from tadone.ui.telegram.middlewares.auth import OwnerOnlyMiddleware
from tadone.ui.telegram.middlewares.di import DIMiddleware

logger = logging.getLogger(__name__)


def _absolute(path: Path, root: Path) -> Path:
    return path if path.is_absolute() else root / path


async def handle_domain_error(event: ErrorEvent) -> None:
    """
    Rejected commands go back to the user as a chat message, never as a crash.

    Callback handlers often answer their query before calling the service,
    and a query can be answered only once, so the error text always goes to
    the chat. The query itself is closed if nobody did that yet.
    """
    exc = event.exception
    text = str(exc) or exc.__class__.__name__
    if isinstance(exc, ConflictError):
        logger.info("Conflict: %s", exc)
    elif isinstance(exc, ExternalServiceError):
        logger.warning("External service failed: %s cause=%r", exc, exc.cause)
    else:
        logger.info("Rejected: %s: %s", exc.__class__.__name__, exc)

    update = event.update
    query = update.callback_query
    if query is not None:
        try:
            await query.answer()
        except TelegramBadRequest:
            logger.debug("Callback query already answered id=%s", query.id)
        if query.message is not None:
            await query.message.answer(escape(text))
    elif update.message is not None:
        await update.message.answer(escape(text))


def build_service(settings: Settings, db: Database, clock: SystemClock) -> TaskService:
    blobs = FsBlobStore(
        root=settings.audio_dir,
        url_base=settings.audio_url_base,
        secret=settings.audio_url_secret,
    )

    transcriber = None
    if settings.openai_api_key:
        transcriber = OpenAITranscriptionService(
            blobs=blobs,
            api_key=settings.openai_api_key,
            model=settings.transcribe_model,
        )
    else:
        logger.warning("OPENAI_API_KEY not set, transcription disabled")

    return TaskService(
        repo=TasksSqliteRepo(db),
        clock=clock,
        ids=UuidGenerator(),
        blobs=blobs,
        transcriber=transcriber,
        language_hint=settings.transcribe_language,
        transcribe_timeout=settings.transcribe_timeout_seconds,
        transcribe_poll_interval=settings.transcribe_poll_seconds,
        audio_url_ttl=settings.audio_url_ttl_seconds,
    )


def build_dispatcher(settings: Settings, service: TaskService, clock: SystemClock) -> Dispatcher:
    dp = Dispatcher()

    # --- middlewares ---
    for observer in (dp.message, dp.callback_query):
        observer.middleware(OwnerOnlyMiddleware(settings.owner_telegram_id))
        observer.middleware(DIMiddleware(service, clock))

    # --- routers (cancel before the FSM flows) ---
    dp.include_router(start_router)
    dp.include_router(cancel_router)
    dp.include_router(tasks_router)
    dp.include_router(audio_router)

    dp.error(ExceptionTypeFilter(DomainError))(handle_domain_error)

    @dp.error(ExceptionTypeFilter(TelegramBadRequest))
    async def handle_old_callback_query(event: ErrorEvent) -> None:
        """Ignore TelegramBadRequest for old/invalid callback queries (e.g. after bot restart)."""
        msg = str(event.exception).lower()
        if "query is too old" in msg or "query id is invalid" in msg or "response timeout expired" in msg:
            logger.debug("Ignoring old/invalid callback query: %s", event.exception)
            return
        raise event.exception

    return dp


async def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    pid = os.getpid()
    logger.info("Bot starting - PID: %s", pid)

    repo_root = Path.cwd()
    settings = replace(
        settings,
        db_path=_absolute(settings.db_path, repo_root),
        audio_dir=_absolute(settings.audio_dir, repo_root),
    )
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.audio_dir.mkdir(parents=True, exist_ok=True)
    logger.info("DB_PATH: %s AUDIO_DIR: %s TZ: %s", settings.db_path, settings.audio_dir, settings.timezone)

    db = Database(str(settings.db_path))
    clock = SystemClock(settings.timezone)

    # --- migrations ---
    await apply_migrations(db=db, now_iso=to_iso(clock.now()))

    service = build_service(settings, db, clock)

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = build_dispatcher(settings, service, clock)

    # --- optional background sweep ---
    sweep_loop = None
    sweep_task = None
    if settings.sweep_interval_seconds > 0:
        sweep_loop = SweepLoop(
            service,
            owner_ids=[settings.owner_id],
            cfg=SweepLoopConfig(interval_seconds=settings.sweep_interval_seconds),
        )
        sweep_task = asyncio.create_task(sweep_loop.run_forever())

    logger.info("Starting polling - PID: %s", pid)
    try:
        await dp.start_polling(bot)
    finally:
        if sweep_loop is not None:
            sweep_loop.stop()
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
        await bot.session.close()
        logger.info("Bot shutdown complete - PID: %s", pid)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
