# tadone/infra/scheduler/loop.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from tadone.domain.tasks.service import TaskService

logger = logging.getLogger(__name__)


@dataclass
class SweepLoopConfig:
    interval_seconds: float = 300.0


class SweepLoop:
    """
    Periodic background sweep for a fixed set of owners.

    Reads already sweep lazily; this only keeps the store fresh between
    reads. Same code path, same invariants.
    """

    def __init__(self, service: TaskService, owner_ids: Sequence[str], cfg: SweepLoopConfig = SweepLoopConfig()) -> None:
        self._service = service
        self._owner_ids = list(owner_ids)
        self._cfg = cfg
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run_forever(self) -> None:
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception as e:
                # never crash the bot because of the sweep, but log errors
                logger.error(f"Sweep tick error: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._cfg.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> int:
        changed = 0
        for owner_id in self._owner_ids:
            result = await self._service.sweep(owner_id)
            changed += result.changed
        return changed
