from __future__ import annotations

from typing import Any
from unittest.mock import Mock

from claude_agent_sdk.types import ResultMessage, StreamEvent

from steer.client.display import Renderer


def make_renderer() -> Mock:
    return Mock(spec=Renderer)


def text_delta(text: str) -> StreamEvent:
    return StreamEvent(
        uuid="evt",
        session_id="sess-1",
        event={"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}},
    )


def result_message(**overrides: Any) -> ResultMessage:
    fields: dict[str, Any] = {
        "subtype": "success",
        "duration_ms": 1200,
        "duration_api_ms": 1000,
        "is_error": False,
        "num_turns": 1,
        "session_id": "sess-1",
        "total_cost_usd": 0.0042,
        "usage": {"input_tokens": 120, "output_tokens": 30},
    }
    fields.update(overrides)
    return ResultMessage(**fields)


def content_of(message: dict[str, Any]) -> str:
    return message["message"]["content"]
