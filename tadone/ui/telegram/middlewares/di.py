from __future__ import annotations

from typing import Callable, Dict, Any, Awaitable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from tadone.domain.tasks.service import TaskService
from tadone.infra.clock.system_clock import SystemClock


class DIMiddleware(BaseMiddleware):
    """
    Inject dependencies to handlers via `data` dict.

    Handlers can request args by name, e.g.
      async def handler(cb: CallbackQuery, task_service: TaskService, clock: SystemClock, owner_id: str): ...
    """

    def __init__(self, task_service: TaskService, clock: SystemClock) -> None:
        self._tasks = task_service
        self._clock = clock

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        # keep names stable across the project
        data["task_service"] = self._tasks
        data["clock"] = self._clock

        return await handler(event, data)
