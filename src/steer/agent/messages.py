"""Inbound agent events and their dispatch to the renderer.

SDK messages are converted into a small closed set of event types at the
boundary. Anything that does not fit is logged and dropped here, so the rest
of the client never inspects raw SDK objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from claude_agent_sdk.types import (
    AssistantMessage,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)

from steer.log_utils import log_event

if TYPE_CHECKING:
    from steer.client.display import Renderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInit:
    session_id: str | None
    model: str
    tools: tuple[str, ...] = ()
    mcp_servers: tuple[str, ...] = ()


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolStart:
    """A tool invocation. `partial` starts come from the token stream and carry no input yet."""

    tool_use_id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    partial: bool = False


@dataclass(frozen=True)
class AssistantText:
    text: str


@dataclass(frozen=True)
class ToolOutcome:
    tool_use_id: str
    is_error: bool


@dataclass(frozen=True)
class UserEcho:
    tool_results: tuple[ToolOutcome, ...] = ()


@dataclass(frozen=True)
class TurnResult:
    duration_ms: int
    input_tokens: int
    output_tokens: int
    cost_usd: float | None = None
    is_error: bool = False
    subtype: str = "success"
    session_id: str | None = None


AgentEvent = SessionInit | TextDelta | ToolStart | AssistantText | UserEcho | TurnResult


def _server_names(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, dict):
        return tuple(str(name) for name in raw)
    if isinstance(raw, list):
        names = []
        for entry in raw:
            if isinstance(entry, dict):
                names.append(str(entry.get("name") or "<server>"))
            else:
                names.append(str(entry))
        return tuple(names)
    return ()


def _parse_system(message: SystemMessage) -> list[AgentEvent]:
    if message.subtype != "init":
        log_event(logger, "agent.message.dropped", level=logging.DEBUG, kind="system", subtype=message.subtype)
        return []
    data = message.data or {}
    return [
        SessionInit(
            session_id=data.get("session_id"),
            model=str(data.get("model") or "unknown"),
            tools=tuple(str(tool) for tool in data.get("tools") or []),
            mcp_servers=_server_names(data.get("mcp_servers")),
        )
    ]


def _parse_stream_event(message: StreamEvent) -> list[AgentEvent]:
    event = message.event or {}
    kind = event.get("type")
    if kind == "content_block_delta":
        delta = event.get("delta") or {}
        if delta.get("type") == "text_delta" and delta.get("text"):
            return [TextDelta(delta["text"])]
        return []
    if kind == "content_block_start":
        block = event.get("content_block") or {}
        if block.get("type") == "tool_use":
            return [ToolStart(tool_use_id=str(block.get("id") or ""), name=str(block.get("name") or "tool"), partial=True)]
        return []
    if kind in {"message_start", "message_delta", "message_stop", "content_block_stop"}:
        return []
    log_event(logger, "agent.stream_event.dropped", level=logging.DEBUG, kind=kind)
    return []


def _parse_assistant(message: AssistantMessage) -> list[AgentEvent]:
    events: list[AgentEvent] = []
    text_parts: list[str] = []
    for block in message.content:
        if isinstance(block, TextBlock):
            text_parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            events.append(ToolStart(tool_use_id=block.id, name=block.name, input=dict(block.input or {})))
    text = "".join(text_parts)
    return [AssistantText(text), *events]


def _parse_user(message: UserMessage) -> list[AgentEvent]:
    content = message.content
    if isinstance(content, str):
        return [UserEcho()]
    outcomes = tuple(
        ToolOutcome(tool_use_id=block.tool_use_id, is_error=bool(block.is_error))
        for block in content
        if isinstance(block, ToolResultBlock)
    )
    return [UserEcho(tool_results=outcomes)]


def _parse_result(message: ResultMessage) -> list[AgentEvent]:
    usage = message.usage or {}
    return [
        TurnResult(
            duration_ms=int(message.duration_ms or 0),
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
            cost_usd=message.total_cost_usd,
            is_error=bool(message.is_error),
            subtype=message.subtype,
            session_id=message.session_id,
        )
    ]


def parse_message(message: Any) -> list[AgentEvent]:
    """Convert one SDK message into zero or more agent events."""
    if isinstance(message, StreamEvent):
        return _parse_stream_event(message)
    if isinstance(message, AssistantMessage):
        return _parse_assistant(message)
    if isinstance(message, UserMessage):
        return _parse_user(message)
    if isinstance(message, SystemMessage):
        return _parse_system(message)
    if isinstance(message, ResultMessage):
        return _parse_result(message)
    log_event(logger, "agent.message.dropped", level=logging.DEBUG, kind=type(message).__name__)
    return []


class MessageHandler:
    """Per-turn dispatcher from agent events to renderer calls."""

    def __init__(
        self,
        renderer: Renderer,
        *,
        on_init: Callable[[SessionInit], None] | None = None,
        on_result: Callable[[TurnResult], None] | None = None,
    ) -> None:
        self._renderer = renderer
        self._on_init = on_init
        self._on_result = on_result
        self._streaming = False
        self._streamed_text = False
        self._tool_names: dict[str, str] = {}
        self._current_tool: str | None = None

    def handle(self, event: AgentEvent) -> None:
        if isinstance(event, SessionInit):
            self._renderer.show_session_init(list(event.tools), list(event.mcp_servers))
            if self._on_init is not None:
                self._on_init(event)
        elif isinstance(event, TextDelta):
            if not self._streaming:
                self._renderer.start_stream()
                self._streaming = True
            self._streamed_text = True
            self._renderer.stream_token(event.text)
        elif isinstance(event, AssistantText):
            self._finish_stream()
            if event.text and not self._streamed_text:
                # Partial messages were off for this block; show it whole.
                self._renderer.start_stream()
                self._renderer.stream_token(event.text)
                self._renderer.complete_stream()
            self._streamed_text = False
        elif isinstance(event, ToolStart):
            self._finish_stream()
            if event.partial or event.tool_use_id in self._tool_names:
                return
            self._tool_names[event.tool_use_id] = event.name
            self._current_tool = event.tool_use_id
            self._renderer.show_tool_start(event.name, event.input)
        elif isinstance(event, UserEcho):
            for outcome in event.tool_results:
                name = self._tool_names.get(outcome.tool_use_id)
                if name is None:
                    continue
                self._renderer.show_tool_complete(name, not outcome.is_error)
                if self._current_tool == outcome.tool_use_id:
                    self._current_tool = None
        elif isinstance(event, TurnResult):
            self._finish_stream()
            self._finish_tool(success=True)
            if event.is_error:
                self._renderer.show_warning(f"Turn ended with {event.subtype}")
            self._renderer.show_stats(event)
            if self._on_result is not None:
                self._on_result(event)

    def reset(self) -> None:
        """Close any open stream or tool display after a failed turn."""
        self._finish_stream()
        self._finish_tool(success=False)

    def _finish_stream(self) -> None:
        if self._streaming:
            self._renderer.complete_stream()
            self._streaming = False

    def _finish_tool(self, *, success: bool) -> None:
        if self._current_tool is not None:
            self._renderer.show_tool_complete(self._tool_names[self._current_tool], success)
            self._current_tool = None
