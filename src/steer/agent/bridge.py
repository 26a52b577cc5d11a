"""Pull-based outbound message channel for the streaming agent call.

The agent call consumes an async iterator of user messages and asks for the
next one whenever it is ready. The session pushes messages (the prompt, then
any spliced interrupts) whenever it has them. `MessageBridge` joins the two:
a push with a consumer already waiting resolves that consumer directly,
otherwise the message is buffered; a pull with a buffered message returns it
at once, otherwise the consumer waits. Delivery order is push order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator

from steer.log_utils import log_event

logger = logging.getLogger(__name__)

UserMessage = dict[str, Any]


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


def create_user_message(content: str) -> UserMessage:
    """Build a user message in the agent's streaming-input shape."""
    return {
        "type": "user",
        "message": {"role": "user", "content": content},
        "parent_tool_use_id": None,
        "session_id": "default",
    }


class MessageBridge:
    def __init__(self) -> None:
        self._queue: deque[UserMessage] = deque()
        self._waiters: deque[asyncio.Future[UserMessage | _EndOfStream]] = deque()
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def request_next(self) -> UserMessage | _EndOfStream:
        """Return the oldest buffered message, or wait for the next push or the end of the stream."""
        if self._queue:
            return self._queue.popleft()
        if self._ended:
            return END_OF_STREAM
        future: asyncio.Future[UserMessage | _EndOfStream] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            return await future
        except asyncio.CancelledError:
            # A cancelled consumer must not swallow a later push.
            if future in self._waiters:
                self._waiters.remove(future)
            raise

    def enqueue(self, message: UserMessage) -> None:
        if self._ended:
            log_event(logger, "bridge.enqueue_after_end", level=logging.WARNING)
            return
        while self._waiters:
            future = self._waiters.popleft()
            if not future.done():
                future.set_result(message)
                return
        self._queue.append(message)

    def end_stream(self) -> None:
        """Release every waiting consumer with END_OF_STREAM and drop anything buffered. Idempotent."""
        dropped = len(self._queue)
        waiters, self._waiters = self._waiters, deque()
        self._queue.clear()
        self._ended = True
        for future in waiters:
            if not future.done():
                future.set_result(END_OF_STREAM)
        if waiters or dropped:
            log_event(logger, "bridge.ended", released=len(waiters), dropped=dropped)

    async def messages(self) -> AsyncIterator[UserMessage]:
        """Async iterator handed to the agent call; finishes when the stream is ended."""
        while True:
            message = await self.request_next()
            if message is END_OF_STREAM:
                return
            yield message
