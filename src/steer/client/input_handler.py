"""Input state machine: turns submitted lines and keystrokes into input events.

The handler does no terminal I/O of its own. A line source feeds it completed
lines (`submit_line`) and, on an interactive terminal, key events
(`on_cancel_key`, `on_newline_key`, `on_text_changed`). The session awaits
`get_input()` for the next prompt or command and `get_permission_input()`
while a tool call waits for approval. A pending permission answer takes
precedence over everything else a line could mean.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Callable

from steer.client.events import (
    CancelOutcome,
    Command,
    Exit,
    InputEvent,
    PermissionAnswer,
    Prompt,
)
from steer.client.interrupts import InterruptQueue
from steer.client.waiter import Waiter
from steer.log_utils import log_event

if TYPE_CHECKING:
    from steer.client.display import Renderer

logger = logging.getLogger(__name__)

CONTINUATION_MARKER = "\\"
MAX_HISTORY = 100
EXIT_CONFIRM_WINDOW = 2.0

PROMPT_SYMBOL = "❯ "
CONTINUATION_SYMBOL = "… "
PERMISSION_SYMBOL = "  > "

_PERMISSION_WORDS: dict[str, PermissionAnswer] = {
    "y": PermissionAnswer.ALLOW_ONCE,
    "yes": PermissionAnswer.ALLOW_ONCE,
    "n": PermissionAnswer.DENY,
    "no": PermissionAnswer.DENY,
    "a": PermissionAnswer.ALLOW_ALWAYS,
    "always": PermissionAnswer.ALLOW_ALWAYS,
    "always allow": PermissionAnswer.ALLOW_ALWAYS,
}


class InputMode(str, Enum):
    IDLE = "idle"
    AWAITING_PROMPT = "awaiting_prompt"
    AWAITING_PERMISSION = "awaiting_permission"
    MULTILINE = "multiline"


def parse_permission_response(text: str) -> PermissionAnswer | None:
    """Map y/yes, n/no, a/always/"always allow" (any case) to an answer; None means re-prompt."""
    return _PERMISSION_WORDS.get(text.strip().lower())


class InputHandler:
    def __init__(
        self,
        renderer: Renderer,
        *,
        clock: Callable[[], float] = time.monotonic,
        max_history: int = MAX_HISTORY,
        exit_window: float = EXIT_CONFIRM_WINDOW,
    ) -> None:
        self._renderer = renderer
        self._clock = clock
        self._exit_window = exit_window
        self._history: deque[str] = deque(maxlen=max_history)
        self._multiline: list[str] = []
        self._skip_next_line = False
        self._capturing = False
        self._capture_buffer = ""
        self._last_cancel_at: float | None = None
        self._closed = False
        self._backlog: deque[InputEvent] = deque()
        self._prompt_waiter: Waiter[InputEvent] = Waiter("prompt")
        self._permission_waiter: Waiter[PermissionAnswer] = Waiter("permission")
        self._exit_listeners: list[Callable[[], None]] = []
        self._refresh: Callable[[], None] | None = None
        self.interrupts = InterruptQueue()

    # -- state -------------------------------------------------------------

    @property
    def history(self) -> list[str]:
        return list(self._history)

    @property
    def capturing(self) -> bool:
        return self._capturing

    @property
    def multiline_active(self) -> bool:
        return bool(self._multiline)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def mode(self) -> InputMode:
        if self._permission_waiter.pending:
            return InputMode.AWAITING_PERMISSION
        if self._multiline:
            return InputMode.MULTILINE
        if self._prompt_waiter.pending:
            return InputMode.AWAITING_PROMPT
        return InputMode.IDLE

    def prompt_message(self) -> str:
        if self._permission_waiter.pending:
            return PERMISSION_SYMBOL
        if self._multiline:
            return CONTINUATION_SYMBOL
        return PROMPT_SYMBOL

    def set_refresh(self, callback: Callable[[], None] | None) -> None:
        """Register a hook the line source uses to redraw its prompt after a mode change."""
        self._refresh = callback

    def on_exit(self, listener: Callable[[], None]) -> None:
        self._exit_listeners.append(listener)

    def _changed(self) -> None:
        if self._refresh is not None:
            self._refresh()

    # -- awaiting input ------------------------------------------------------

    async def get_input(self) -> InputEvent:
        """Wait for the next prompt, command, or exit."""
        if self._backlog:
            return self._backlog.popleft()
        if self._closed:
            return Exit()
        future = self._prompt_waiter.arm()
        self._changed()
        return await future

    async def get_permission_input(self) -> PermissionAnswer:
        """Wait for a y/n/a answer; works while a turn is streaming."""
        if self._closed:
            return PermissionAnswer.DENY
        future = self._permission_waiter.arm()
        self._changed()
        return await future

    # -- capture mode ------------------------------------------------------

    def enable_capture(self) -> None:
        self._capturing = True
        self._capture_buffer = ""

    def disable_capture(self) -> None:
        self._capturing = False
        self._capture_buffer = ""

    def on_text_changed(self, text: str) -> None:
        """Track the partially typed line so the cancel key can submit it as an interrupt."""
        if self._capturing:
            self._capture_buffer = text

    # -- lines -------------------------------------------------------------

    def submit_line(self, line: str) -> None:
        # A completed line always empties the terminal buffer.
        self._capture_buffer = ""
        if self._skip_next_line:
            self._skip_next_line = False
            return

        if self._permission_waiter.pending:
            answer = parse_permission_response(line)
            if answer is None:
                self._renderer.show_permission_reprompt()
                return
            log_event(logger, "permission.answered", answer=answer.value)
            self._permission_waiter.resolve(answer)
            self._changed()
            return

        stripped = line.rstrip()
        if stripped.endswith(CONTINUATION_MARKER):
            self._multiline.append(stripped[: -len(CONTINUATION_MARKER)])
            self._changed()
            return

        if self._multiline:
            self._multiline.append(line)
            text = "\n".join(self._multiline)
            self._multiline.clear()
            self._changed()
        else:
            text = line
        self._dispatch(text.strip())

    def _dispatch(self, text: str) -> None:
        if text:
            self._history.append(text)

        is_command = text.startswith("/") and "\n" not in text
        if is_command and self._prompt_waiter.pending:
            self._deliver(Command(text[1:].lower()))
            return

        if self._capturing:
            if text:
                self.interrupts.submit(text)
            return

        if is_command:
            self._deliver(Command(text[1:].lower()))
        elif text:
            self._deliver(Prompt(text))
        else:
            self._changed()

    def _deliver(self, event: InputEvent) -> None:
        if not self._prompt_waiter.resolve(event):
            # Nobody is waiting yet (between turns); keep it for the next get_input().
            self._backlog.append(event)
        self._changed()

    # -- keys --------------------------------------------------------------

    def on_cancel_key(self) -> CancelOutcome:
        if self._multiline:
            self._multiline.clear()
            self._skip_next_line = False
            self._capture_buffer = ""
            self._last_cancel_at = None
            log_event(logger, "input.multiline.cancelled")
            self._changed()
            return CancelOutcome.MULTILINE_CLEARED

        if self._capturing and self._capture_buffer.strip():
            text = self._capture_buffer.strip()
            self._capture_buffer = ""
            self._last_cancel_at = None
            self._history.append(text)
            self.interrupts.submit(text)
            return CancelOutcome.INTERRUPT_SENT

        now = self._clock()
        if self._last_cancel_at is not None and now - self._last_cancel_at <= self._exit_window:
            self._last_cancel_at = None
            self.request_exit()
            return CancelOutcome.EXIT

        self._last_cancel_at = now
        self._renderer.show_warning("Press Ctrl+C again to exit")
        return CancelOutcome.EXIT_WARNING

    def on_newline_key(self, partial: str) -> bool:
        """Move the typed text into the multiline buffer; the next (empty) line completion is skipped."""
        if self._permission_waiter.pending or self._closed:
            return False
        self._multiline.append(partial)
        self._capture_buffer = ""
        self._skip_next_line = True
        self._changed()
        return True

    # -- shutdown ----------------------------------------------------------

    def close(self) -> None:
        """The input source is gone: pending and future prompts resolve to Exit."""
        if self._closed:
            return
        self._closed = True
        self._capturing = False
        self._multiline.clear()
        self._prompt_waiter.resolve(Exit())
        self._permission_waiter.resolve(PermissionAnswer.DENY)
        log_event(logger, "input.closed")

    def request_exit(self) -> None:
        """Confirmed exit from the keyboard; tears down the whole session."""
        was_closed = self._closed
        self.close()
        if was_closed:
            return
        log_event(logger, "input.exit_requested")
        for listener in self._exit_listeners:
            listener()
