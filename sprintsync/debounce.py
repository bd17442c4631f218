"""Queue-plus-timer debounce stage.

Collapses bursts of ``submit`` calls into a single call of ``action`` with the
most recently submitted value, ``delay`` seconds after the last submit.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger("sprintsync.debounce")

T = TypeVar("T")

Action = Callable[[T], Union[Awaitable[None], None]]


class Debouncer(Generic[T]):
    def __init__(self, delay: float, action: Action, name: str = "debounce"):
        self._delay = delay
        self._action = action
        self._name = name
        self._pending: Optional[T] = None
        self._has_pending = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._inflight: set[asyncio.Future] = set()

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def submit(self, value: T) -> None:
        """Queue ``value``, replacing anything queued earlier in the window."""
        loop = asyncio.get_running_loop()
        self._pending = value
        self._has_pending = True
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def flush(self) -> None:
        """Fire the pending value now, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._fire()

    def cancel(self) -> None:
        """Drop the pending value without firing."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
        self._has_pending = False

    async def drain(self) -> None:
        """Wait for actions already dispatched to finish."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        if not self._has_pending:
            return
        value = self._pending
        self._pending = None
        self._has_pending = False

        result = self._action(value)
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._inflight.add(task)
            task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Future) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{self._name}: debounced action failed: {exc}")
