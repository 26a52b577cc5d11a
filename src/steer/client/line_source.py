"""Line sources feed completed lines and key events into the input handler."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TextIO

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.buffer import Buffer  # type: ignore
from prompt_toolkit.key_binding import KeyBindings  # type: ignore
from prompt_toolkit.patch_stdout import patch_stdout  # type: ignore

from steer.client.events import CancelOutcome
from steer.client.input_handler import InputHandler
from steer.log_utils import log_event

logger = logging.getLogger(__name__)


class TerminalLineSource:
    """Interactive prompt that stays live while the agent streams output above it."""

    def __init__(self, handler: InputHandler) -> None:
        self._handler = handler
        self._session: PromptSession | None = None

    def _key_bindings(self) -> KeyBindings:
        kb = KeyBindings()
        handler = self._handler

        @kb.add("c-c")
        def _(event):  # type: ignore
            outcome = handler.on_cancel_key()
            if outcome in {CancelOutcome.MULTILINE_CLEARED, CancelOutcome.INTERRUPT_SENT}:
                event.app.current_buffer.reset()
            elif outcome is CancelOutcome.EXIT and not event.app.is_done:
                event.app.exit(exception=EOFError())

        @kb.add("escape", "enter")
        @kb.add("c-j")
        def _(event):  # type: ignore
            buffer = event.app.current_buffer
            if handler.on_newline_key(buffer.text) and not event.app.is_done:
                # The handler skips the empty line this completes.
                event.app.exit(result="")

        return kb

    def _on_text_changed(self, buffer: Buffer) -> None:
        self._handler.on_text_changed(buffer.text)

    def _invalidate(self) -> None:
        if self._session is not None and self._session.app.is_running:
            self._session.app.invalidate()

    async def run(self) -> None:
        session: PromptSession = PromptSession(
            message=self._handler.prompt_message,
            key_bindings=self._key_bindings(),
        )
        self._session = session
        session.default_buffer.on_text_changed += self._on_text_changed
        self._handler.set_refresh(self._invalidate)
        try:
            with patch_stdout(raw=True):
                while not self._handler.closed:
                    try:
                        line = await session.prompt_async()
                    except EOFError:
                        log_event(logger, "input.eof")
                        break
                    except KeyboardInterrupt:
                        continue
                    self._handler.submit_line(line)
        finally:
            self._handler.set_refresh(None)
            self._handler.close()


class StreamLineSource:
    """Reads lines from a non-interactive stream such as a pipe."""

    def __init__(self, handler: InputHandler, stream: TextIO | None = None) -> None:
        self._handler = handler
        self._stream = stream if stream is not None else sys.stdin

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            while not self._handler.closed:
                line = await loop.run_in_executor(None, self._stream.readline)
                if not line:
                    log_event(logger, "input.eof")
                    break
                self._handler.submit_line(line.rstrip("\r\n"))
        finally:
            self._handler.close()


def create_line_source(handler: InputHandler, stream: TextIO | None = None) -> TerminalLineSource | StreamLineSource:
    if stream is None:
        stream = sys.stdin
    if stream.isatty():
        return TerminalLineSource(handler)
    return StreamLineSource(handler, stream)
