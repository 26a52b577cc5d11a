"""Client-side slash command registry and dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from steer.client.events import Command
from steer.log_utils import log_event

if TYPE_CHECKING:
    from steer.client.session import Session

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20

SlashHandler = Callable[["Session", str], None]


@dataclass
class SlashCommandDef:
    description: str
    hint: str
    handler: SlashHandler


SLASH_HANDLERS: dict[str, SlashCommandDef] = {}


def register_slash_command(name: str, description: str, hint: str) -> Callable[[SlashHandler], SlashHandler]:
    """Decorator to register a slash command."""

    def _decorator(func: SlashHandler) -> SlashHandler:
        SLASH_HANDLERS[name] = SlashCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


def help_entries() -> list[tuple[str, str]]:
    return [(entry.hint, entry.description) for entry in SLASH_HANDLERS.values()]


@register_slash_command("help", description="Show this help message", hint="/help")
def _handle_help(session: Session, _argument: str) -> None:
    session.renderer.show_help(help_entries())


@register_slash_command("clear", description="Clear the screen and start a fresh conversation", hint="/clear")
def _handle_clear(session: Session, _argument: str) -> None:
    session.clear_conversation()


@register_slash_command("history", description="Show recent input history", hint="/history")
def _handle_history(session: Session, _argument: str) -> None:
    session.renderer.show_history(session.input.history[-HISTORY_LIMIT:])


@register_slash_command("exit", description="Exit the client", hint="/exit")
@register_slash_command("quit", description="Exit the client", hint="/quit")
def _handle_exit(session: Session, _argument: str) -> None:
    session.renderer.show_info("Goodbye!")
    session.stop()


def handle_slash_command(session: Session, command: Command) -> bool:
    """Run a registered command; unknown commands get a warning. Returns whether it was known."""
    entry = SLASH_HANDLERS.get(command.keyword)
    if entry is None:
        log_event(logger, "command.unknown", level=logging.INFO, command=command.keyword)
        session.renderer.show_warning(f"Unknown command: /{command.keyword}")
        session.renderer.show_info("Type /help for available commands")
        return False
    log_event(logger, "command.run", command=command.keyword)
    entry.handler(session, command.argument)
    return True
