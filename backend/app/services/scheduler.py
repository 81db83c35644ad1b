"""
Delayed callbacks with cancellable handles.

The wizard never sleeps on the event loop itself: auto-approval and message
cleanup are scheduled through a Scheduler so they can be cancelled when a user
action supersedes them, and replaced by a manual scheduler in tests.
"""
import asyncio
import threading
from typing import Awaitable, Callable, Optional, Protocol, Set

from backend.app.core.logger_config import setup_logger

logger = setup_logger(__name__)

Callback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callback, name: str = "") -> TimerHandle: ...


class HandledFlag:
    """
    Single-use flag with an atomic check-and-set.
    claim() returns True for exactly one caller.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._handled = False

    def claim(self) -> bool:
        with self._lock:
            if self._handled:
                return False
            self._handled = True
            return True

    @property
    def handled(self) -> bool:
        return self._handled


class AsyncioTimer:
    def __init__(self, name: str, on_cancel: Optional[Callable[["AsyncioTimer"], None]] = None):
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._on_cancel = on_cancel
        self._cancelled = False

    def cancel(self) -> None:
        # Only the pending delay is cancelled; a callback already running finishes.
        if self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        if self._on_cancel is not None:
            self._on_cancel(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Scheduler backed by loop.call_later on the running event loop."""

    def __init__(self):
        self._timers: Set[AsyncioTimer] = set()
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: Callback, name: str = "") -> AsyncioTimer:
        loop = asyncio.get_running_loop()
        timer = AsyncioTimer(name, on_cancel=self._timers.discard)

        def _fire():
            self._timers.discard(timer)
            if timer.cancelled:
                return
            task = loop.create_task(self._run(timer, callback))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        timer._handle = loop.call_later(delay, _fire)
        self._timers.add(timer)
        return timer

    @staticmethod
    async def _run(timer: AsyncioTimer, callback: Callback):
        try:
            await callback()
        except Exception:
            logger.exception("Scheduled callback '%s' failed", timer.name)

    async def shutdown(self):
        """Cancels timers that have not fired yet and waits for callbacks that are already running."""
        for timer in list(self._timers):
            logger.debug("Cancelling pending timer '%s'", timer.name)
            timer.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
