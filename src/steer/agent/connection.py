"""Streaming agent call backed by the Claude Agent SDK."""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator, Awaitable, Callable

from claude_agent_sdk import query
from claude_agent_sdk.types import ClaudeAgentOptions, PermissionResultAllow, PermissionResultDeny, ToolPermissionContext

from steer.agent.bridge import UserMessage
from steer.agent.messages import AgentEvent, TextDelta, parse_message
from steer.config import SteerConfig
from steer.log_utils import log_deltas_enabled, log_event

logger = logging.getLogger(__name__)

CanUseTool = Callable[
    [str, dict[str, Any], ToolPermissionContext],
    Awaitable[PermissionResultAllow | PermissionResultDeny],
]
QueryFn = Callable[..., AsyncIterator[Any]]


def build_options(config: SteerConfig, can_use_tool: CanUseTool | None, *, resume: str | None = None) -> ClaudeAgentOptions:
    """Map client configuration onto SDK options for one streaming call."""
    return ClaudeAgentOptions(
        model=config.model,
        max_turns=config.max_turns,
        permission_mode=config.permission_mode,
        cwd=config.working_directory(),
        allowed_tools=list(config.allowed_tools),
        disallowed_tools=list(config.disallowed_tools),
        mcp_servers=dict(config.mcp_servers),
        system_prompt=config.system_prompt,
        include_partial_messages=True,
        can_use_tool=can_use_tool,
        resume=resume,
        env=dict(os.environ),
    )


class AgentConnection:
    """Runs one streaming call per turn and yields parsed agent events.

    `query_fn` defaults to the SDK's `query`; tests pass a fake with the same
    shape (keyword `prompt` and `options`, returns an async iterator).
    """

    def __init__(
        self,
        config: SteerConfig,
        can_use_tool: CanUseTool | None = None,
        *,
        query_fn: QueryFn | None = None,
    ) -> None:
        self._config = config
        self._can_use_tool = can_use_tool
        self._query = query_fn or query

    async def stream(self, messages: AsyncIterator[UserMessage], *, resume: str | None = None) -> AsyncIterator[AgentEvent]:
        options = build_options(self._config, self._can_use_tool, resume=resume)
        log_event(logger, "agent.stream.start", model=self._config.model, resume=resume)
        responses = self._query(prompt=messages, options=options)
        try:
            async for message in responses:
                for event in parse_message(message):
                    if isinstance(event, TextDelta):
                        if log_deltas_enabled():
                            log_event(logger, "agent.delta", level=logging.DEBUG, text=event.text)
                    else:
                        log_event(logger, "agent.event", level=logging.DEBUG, kind=type(event).__name__)
                    yield event
        finally:
            closer = getattr(responses, "aclose", None)
            if closer is not None:
                await closer()
            log_event(logger, "agent.stream.closed")
