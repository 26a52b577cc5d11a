"""FIFO of interrupt texts captured while a turn is streaming."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from steer.log_utils import log_event

logger = logging.getLogger(__name__)

InterruptCallback = Callable[[str], None]


class InterruptQueue:
    """Queue plus an optional single notification callback.

    The callback is a convenience; consumers are expected to poll
    `pop_next()` so nothing is lost when no callback is registered.
    """

    def __init__(self) -> None:
        self._items: deque[str] = deque()
        self._callback: InterruptCallback | None = None

    def on_interrupt(self, callback: InterruptCallback | None) -> None:
        self._callback = callback

    def submit(self, text: str) -> None:
        self._items.append(text)
        log_event(logger, "interrupt.captured", chars=len(text), queued=len(self._items))
        if self._callback is not None:
            self._callback(text)

    def requeue(self, texts: list[str]) -> None:
        """Put already popped interrupts back at the front, oldest first, without notifying."""
        self._items.extendleft(reversed(texts))

    def has_pending(self) -> bool:
        return bool(self._items)

    def pop_next(self) -> str | None:
        """Remove and return the oldest interrupt, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def __len__(self) -> int:
        return len(self._items)
