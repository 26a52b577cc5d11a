"""Input events produced by the input handler and consumed by the session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Prompt:
    text: str


@dataclass(frozen=True)
class Command:
    """A slash command; `name` is lower-cased with the leading `/` removed."""

    name: str

    @property
    def keyword(self) -> str:
        return self.name.split(maxsplit=1)[0] if self.name else ""

    @property
    def argument(self) -> str:
        parts = self.name.split(maxsplit=1)
        return parts[1].strip() if len(parts) > 1 else ""


@dataclass(frozen=True)
class Interrupt:
    text: str


@dataclass(frozen=True)
class Exit:
    pass


InputEvent = Prompt | Command | Interrupt | Exit


class PermissionAnswer(str, Enum):
    ALLOW_ONCE = "allow_once"
    DENY = "deny"
    ALLOW_ALWAYS = "allow_always"


class CancelOutcome(str, Enum):
    """What a press of the cancel key did, so the line source can reset its buffer."""

    MULTILINE_CLEARED = "multiline_cleared"
    INTERRUPT_SENT = "interrupt_sent"
    EXIT_WARNING = "exit_warning"
    EXIT = "exit"
