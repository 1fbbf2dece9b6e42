"""
services/countdown.py

Repeating one-second exam countdown as an explicit asyncio task.

Runs `callback` every `interval` seconds until the callback returns False
or cancel() is called. cancel() is deterministic: once it returns, the
callback is not invoked again.
"""

import asyncio
import logging
import traceback
from typing import Awaitable, Callable, Optional

from config import TICK_SECONDS

logger = logging.getLogger(__name__)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class Countdown:
    def __init__(self, callback: Callable[[], Awaitable[bool]], interval: float = TICK_SECONDS):
        self.callback = callback
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def start(self) -> None:
        """Start ticking on the running loop. No-op if already running."""
        if self.running:
            return
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        # called from inside the callback: the loop exits on the flag
        if task is _current_task():
            return
        task.cancel()

    async def _run(self) -> None:
        try:
            while not self._cancelled:
                await asyncio.sleep(self.interval)
                if self._cancelled:
                    break
                if not await self.callback():
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error(f"Countdown stopped by an error:\n{traceback.format_exc()}")
