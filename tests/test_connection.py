from __future__ import annotations

from typing import Any, AsyncIterator

import pytest

from steer.agent.bridge import MessageBridge, create_user_message
from steer.agent.connection import AgentConnection, build_options
from steer.agent.messages import TextDelta, TurnResult
from steer.config import SteerConfig

from tests.utils import result_message, text_delta


def test_build_options_maps_config() -> None:
    config = SteerConfig.model_validate(
        {
            "model": "claude-test",
            "maxTurns": 7,
            "permissionMode": "acceptEdits",
            "cwd": "/work",
            "allowedTools": ["Read"],
            "systemPrompt": "Be brief.",
        }
    )

    async def can_use_tool(*_args: Any) -> Any:
        return None

    options = build_options(config, can_use_tool, resume="sess-1")

    assert options.model == "claude-test"
    assert options.max_turns == 7
    assert options.permission_mode == "acceptEdits"
    assert str(options.cwd) == "/work"
    assert options.allowed_tools == ["Read"]
    assert options.system_prompt == "Be brief."
    assert options.include_partial_messages is True
    assert options.can_use_tool is can_use_tool
    assert options.resume == "sess-1"


@pytest.mark.asyncio
async def test_stream_parses_messages_and_closes_query() -> None:
    closed: list[bool] = []
    seen_prompt: list[Any] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        seen_prompt.append(prompt)
        try:
            yield text_delta("Hi")
            yield object()
            yield result_message()
        finally:
            closed.append(True)

    bridge = MessageBridge()
    bridge.enqueue(create_user_message("hello"))
    messages = bridge.messages()
    connection = AgentConnection(SteerConfig(), query_fn=fake_query)

    events = [event async for event in connection.stream(messages)]

    assert seen_prompt == [messages]
    assert events[0] == TextDelta("Hi")
    assert isinstance(events[1], TurnResult)
    assert len(events) == 2
    assert closed == [True]
