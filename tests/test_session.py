from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import pytest
from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny, ToolPermissionContext, UserMessage

from steer.agent.connection import AgentConnection
from steer.client.input_handler import InputHandler, InputMode
from steer.client.session import Session
from steer.config import SteerConfig

from tests.utils import content_of, make_renderer, result_message, text_delta


def _make_session(query_fn: Any, *, clock: Any = None) -> tuple[Session, InputHandler, Any]:
    config = SteerConfig()
    renderer = make_renderer()
    handler = InputHandler(renderer, clock=clock) if clock is not None else InputHandler(renderer)
    connection = AgentConnection(config, query_fn=query_fn)
    session = Session(config, renderer=renderer, input_handler=handler, connection=connection)
    return session, handler, renderer


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_interrupts_reach_agent_after_prompt_in_typed_order() -> None:
    received: list[str] = []
    handler_ref: list[InputHandler] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        stream = prompt.__aiter__()
        received.append(content_of(await stream.__anext__()))
        yield text_delta("Working")
        handler_ref[0].submit_line("A")
        handler_ref[0].submit_line("B")
        yield text_delta(" on it")
        received.append(content_of(await stream.__anext__()))
        received.append(content_of(await stream.__anext__()))
        yield result_message()

    session, handler, renderer = _make_session(fake_query)
    handler_ref.append(handler)

    await session.handle_prompt("fix the build")

    assert received == ["fix the build", "[User interrupt] A", "[User interrupt] B"]
    assert [c.args for c in renderer.show_interrupt.call_args_list] == [("A",), ("B",)]
    renderer.show_stats.assert_called_once()
    assert session.state.session_id == "sess-1"
    assert not session.state.is_streaming
    assert not handler.capturing
    assert handler.history == ["A", "B"]


@pytest.mark.asyncio
async def test_turn_ends_message_stream_after_result() -> None:
    streams: list[AsyncIterator[dict[str, Any]]] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        stream = prompt.__aiter__()
        streams.append(stream)
        await stream.__anext__()
        yield result_message()

    session, _handler, _renderer = _make_session(fake_query)

    await session.handle_prompt("hi")

    with pytest.raises(StopAsyncIteration):
        await streams[0].__anext__()


@pytest.mark.asyncio
async def test_resume_uses_session_id_from_previous_turn() -> None:
    seen_resume: list[str | None] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        seen_resume.append(options.resume)
        await prompt.__aiter__().__anext__()
        yield result_message(session_id="sess-42")

    session, _handler, _renderer = _make_session(fake_query)

    await session.handle_prompt("one")
    await session.handle_prompt("two")
    session.clear_conversation()
    await session.handle_prompt("three")

    assert seen_resume == [None, "sess-42", None]


@pytest.mark.asyncio
async def test_turn_error_is_reported_and_input_recovers() -> None:
    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        await prompt.__aiter__().__anext__()
        yield text_delta("partial")
        raise RuntimeError("connection lost")

    session, handler, renderer = _make_session(fake_query)

    await session.handle_prompt("hi")

    (error,), _ = renderer.show_error.call_args
    assert str(error) == "connection lost"
    renderer.complete_stream.assert_called_once_with()
    assert not handler.capturing
    assert not session.state.is_streaming


@pytest.mark.asyncio
async def test_main_loop_runs_prompts_and_commands_then_exits() -> None:
    prompts: list[str] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        prompts.append(content_of(await prompt.__aiter__().__anext__()))
        yield result_message()

    session, handler, renderer = _make_session(fake_query)
    handler.submit_line("/help")
    handler.submit_line("hello")
    handler.submit_line("/history")
    handler.submit_line("/bogus")
    handler.submit_line("/exit")

    await asyncio.wait_for(session.start(), timeout=2)

    assert prompts == ["hello"]
    renderer.show_welcome.assert_called_once()
    renderer.show_help.assert_called_once()
    renderer.show_history.assert_called_once_with(["/help", "hello", "/history", "/bogus", "/exit"])
    renderer.show_warning.assert_called_once_with("Unknown command: /bogus")
    renderer.show_info.assert_any_call("Type /help for available commands")
    renderer.show_info.assert_any_call("Goodbye!")
    assert not session.running


@pytest.mark.asyncio
async def test_interrupt_typed_after_last_event_seeds_next_turn() -> None:
    prompts: list[str] = []
    handler_ref: list[InputHandler] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        prompts.append(content_of(await prompt.__aiter__().__anext__()))
        if len(prompts) == 1:
            handler_ref[0].submit_line("and the docs")
        else:
            handler_ref[0].close()
        yield result_message()

    session, handler, renderer = _make_session(fake_query)
    handler_ref.append(handler)
    handler.submit_line("update the changelog")

    await asyncio.wait_for(session.start(), timeout=2)

    assert prompts == ["update the changelog", "[User interrupt] and the docs"]
    renderer.show_interrupt.assert_called_once_with("and the docs")


@pytest.mark.asyncio
async def test_double_cancel_during_turn_stops_session() -> None:
    started = asyncio.Event()
    now = [0.0]

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        await prompt.__aiter__().__anext__()
        yield text_delta("thinking hard")
        started.set()
        await asyncio.Event().wait()
        yield result_message()

    session, handler, renderer = _make_session(fake_query, clock=lambda: now[0])
    handler.submit_line("long task")
    runner = asyncio.create_task(session.start())
    await asyncio.wait_for(started.wait(), timeout=2)

    handler.on_cancel_key()
    now[0] = 0.5
    handler.on_cancel_key()
    await asyncio.wait_for(runner, timeout=2)

    assert not session.running
    assert not session.state.is_streaming
    renderer.show_warning.assert_called_once_with("Press Ctrl+C again to exit")


@pytest.mark.asyncio
async def test_permission_prompt_round_trip() -> None:
    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        yield result_message()

    session, handler, renderer = _make_session(fake_query)
    rule = object()
    context = ToolPermissionContext(suggestions=[rule])

    pending = asyncio.create_task(session.handle_can_use_tool("Bash", {"command": "make"}, context))
    await _settle()
    assert handler.mode is InputMode.AWAITING_PERMISSION
    renderer.show_permission_prompt.assert_called_once_with("Bash", {"command": "make"})

    handler.submit_line("always")
    result = await pending

    assert isinstance(result, PermissionResultAllow)
    assert result.updated_permissions == [rule]
    renderer.show_permission_result.assert_called_once_with(True, True)


@pytest.mark.asyncio
async def test_concurrent_permission_requests_are_asked_in_turn() -> None:
    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        yield result_message()

    session, handler, renderer = _make_session(fake_query)
    context = ToolPermissionContext()

    first = asyncio.create_task(session.handle_can_use_tool("Write", {"file_path": "a.txt"}, context))
    second = asyncio.create_task(session.handle_can_use_tool("Write", {"file_path": "b.txt"}, context))
    await _settle()
    assert renderer.show_permission_prompt.call_count == 1

    handler.submit_line("n")
    assert isinstance(await first, PermissionResultDeny)
    await _settle()
    assert renderer.show_permission_prompt.call_count == 2

    handler.submit_line("y")
    assert isinstance(await second, PermissionResultAllow)


@pytest.mark.asyncio
async def test_cleanup_is_idempotent_and_denies_pending_permission() -> None:
    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        yield result_message()

    session, handler, _renderer = _make_session(fake_query)
    pending = asyncio.create_task(session.handle_can_use_tool("Bash", {"command": "ls"}, ToolPermissionContext()))
    await _settle()

    await session.cleanup()
    await session.cleanup()

    assert isinstance(await pending, PermissionResultDeny)
    assert handler.closed


@pytest.mark.asyncio
async def test_interrupt_without_reply_before_result_is_resent_as_new_turn() -> None:
    prompts: list[str] = []
    handler_ref: list[InputHandler] = []

    async def fake_query(*, prompt: AsyncIterator[dict[str, Any]], options: Any) -> AsyncIterator[Any]:
        prompts.append(content_of(await prompt.__aiter__().__anext__()))
        if len(prompts) == 1:
            yield text_delta("Done.")
            handler_ref[0].submit_line("one more thing")
            yield UserMessage(content="tool output")
        else:
            handler_ref[0].close()
        yield result_message()

    session, handler, renderer = _make_session(fake_query)
    handler_ref.append(handler)
    handler.submit_line("tidy the imports")

    await asyncio.wait_for(session.start(), timeout=2)

    assert prompts == ["tidy the imports", "[User interrupt] one more thing"]
    renderer.show_info.assert_any_call("Turn ended before a reply to your interrupt; sending it again")
    assert len(handler.interrupts) == 0
