"""
Timer service used for buy-phase deadlines and round auto-advance.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...


class TimerService(ABC):
    """Fires a callback once after a delay."""

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class _AsyncioHandle(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle):
        self.handle = handle

    def cancel(self) -> None:
        self.handle.cancel()


class AsyncioTimerService(TimerService):
    """Schedules callbacks on an asyncio event loop with call_later."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self.loop is not None:
            return self.loop
        return asyncio.get_running_loop()

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._get_loop()
        return _AsyncioHandle(loop.call_later(delay, self._fire, callback))

    @staticmethod
    def _fire(callback: Callable[[], None]):
        try:
            callback()
        except Exception:
            logger.exception("Timer callback failed")
