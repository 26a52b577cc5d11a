"""Session orchestrator: the main input loop and one streaming turn at a time.

A turn opens a fresh message bridge, sends the prompt through it and renders
agent events as they arrive. While the turn streams, the input handler runs in
capture mode; every captured interrupt is tagged and pushed into the same
bridge so the agent sees it mid-turn, in the order it was typed.
"""

from __future__ import annotations

import asyncio
import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any, AsyncIterator

from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny, ToolPermissionContext

from steer.agent.bridge import MessageBridge, create_user_message
from steer.agent.connection import AgentConnection
from steer.agent.messages import AgentEvent, AssistantText, MessageHandler, SessionInit, TextDelta, ToolStart, TurnResult
from steer.agent.permissions import build_permission_result
from steer.client.display import Renderer
from steer.client.events import Command, Exit, Interrupt, PermissionAnswer, Prompt
from steer.client.input_handler import InputHandler
from steer.client.session_state import SessionState
from steer.client.slash import handle_slash_command
from steer.config import SteerConfig
from steer.log_utils import log_context, log_event

logger = logging.getLogger(__name__)


def client_version() -> str:
    try:
        return version("steer")
    except PackageNotFoundError:
        return "0.0.0"


class Session:
    def __init__(
        self,
        config: SteerConfig,
        *,
        renderer: Renderer | None = None,
        input_handler: InputHandler | None = None,
        connection: AgentConnection | None = None,
    ) -> None:
        self.config = config
        self.renderer = renderer or Renderer(config.ui)
        self.input = input_handler or InputHandler(self.renderer)
        self.connection = connection or AgentConnection(config, self.handle_can_use_tool)
        self.state = SessionState(model=config.model, cwd=config.working_directory())
        self._running = False
        self._bridge: MessageBridge | None = None
        self._turn_task: asyncio.Task[None] | None = None
        self._permission_lock = asyncio.Lock()
        self._cleaned_up = False
        self.input.interrupts.on_interrupt(self._on_interrupt)
        self.input.on_exit(self.stop)

    @property
    def running(self) -> bool:
        return self._running

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        self._running = True
        log_event(logger, "session.start", model=self.config.model, cwd=self.state.cwd)
        self.renderer.show_welcome(client_version(), self.config.model, self.state.cwd)
        await self.main_loop()

    async def main_loop(self) -> None:
        while self._running:
            leftover = self.input.interrupts.pop_next()
            if leftover is not None:
                # Typed after the last turn had already finished.
                self.renderer.show_interrupt(leftover)
                await self._run_turn(self._tag_interrupt(leftover))
                continue

            event = await self.input.get_input()
            if isinstance(event, Exit):
                self._running = False
            elif isinstance(event, Command):
                handle_slash_command(self, event)
            elif isinstance(event, Interrupt):
                await self._run_turn(self._tag_interrupt(event.text))
            elif isinstance(event, Prompt):
                await self._run_turn(event.text)
        log_event(logger, "session.loop.exit", turns=self.state.turn_count)

    def stop(self) -> None:
        """Leave the main loop and abandon the turn in flight, if any."""
        self._running = False
        if self._turn_task is not None and not self._turn_task.done():
            log_event(logger, "session.turn.cancel")
            self._turn_task.cancel()

    async def cleanup(self) -> None:
        if self._cleaned_up:
            return
        self._cleaned_up = True
        self._running = False
        if self._bridge is not None:
            self._bridge.end_stream()
        self.input.close()
        self.renderer.stop_spinner()
        log_event(logger, "session.cleanup")

    def clear_conversation(self) -> None:
        self.state.session_id = None
        self.state.turn_count = 0
        self.renderer.clear()
        self.renderer.show_welcome(client_version(), self.state.model, self.state.cwd)
        self.renderer.show_success("Conversation cleared")

    # -- turns ---------------------------------------------------------------

    def _tag_interrupt(self, text: str) -> str:
        return f"{self.config.interrupt_prefix} {text}"

    async def _run_turn(self, text: str) -> None:
        self._turn_task = asyncio.create_task(self.handle_prompt(text))
        try:
            await self._turn_task
        except asyncio.CancelledError:
            if self._running:
                raise
        finally:
            self._turn_task = None

    async def handle_prompt(self, text: str) -> None:
        self.state.turn_count += 1
        self.state.is_streaming = True
        self.input.enable_capture()
        bridge = MessageBridge()
        self._bridge = bridge
        handler = MessageHandler(self.renderer, on_init=self._on_session_init, on_result=self._on_turn_result)
        bridge.enqueue(create_user_message(text))
        events = self.connection.stream(bridge.messages(), resume=self.state.session_id)

        with log_context(turn=self.state.turn_count):
            log_event(logger, "turn.start", chars=len(text), resume=self.state.session_id)
            self.renderer.show_thinking()
            # Spliced since the agent last produced output.
            unanswered: list[str] = []
            try:
                async for event in events:
                    handler.handle(event)
                    if isinstance(event, TurnResult):
                        self._requeue_unanswered(unanswered)
                        break
                    if isinstance(event, (TextDelta, AssistantText, ToolStart)):
                        unanswered.clear()
                    unanswered.extend(self._splice_interrupts(bridge))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Turn failed")
                handler.reset()
                self.renderer.show_error(exc)
            finally:
                handler.reset()  # no-op after a clean result
                self.state.is_streaming = False
                self.state.pending_interrupt = None
                self.input.disable_capture()
                bridge.end_stream()
                self._bridge = None
                self.renderer.stop_spinner()
                await self._close_stream(events)
                log_event(logger, "turn.end", pending_interrupts=len(self.input.interrupts))

    def _splice_interrupts(self, bridge: MessageBridge) -> list[str]:
        spliced: list[str] = []
        while (text := self.input.interrupts.pop_next()) is not None:
            self.renderer.show_interrupt(text)
            bridge.enqueue(create_user_message(self._tag_interrupt(text)))
            spliced.append(text)
            log_event(logger, "interrupt.spliced", chars=len(text))
        return spliced

    def _requeue_unanswered(self, texts: list[str]) -> None:
        """The turn ended before the agent replied to these; the main loop resends them as a new turn."""
        if not texts:
            return
        self.input.interrupts.requeue(texts)
        self.renderer.show_info("Turn ended before a reply to your interrupt; sending it again")
        log_event(logger, "interrupt.requeued", count=len(texts))

    async def _close_stream(self, events: AsyncIterator[AgentEvent]) -> None:
        closer = getattr(events, "aclose", None)
        if closer is None:
            return
        try:
            await closer()
        except Exception:  # noqa: BLE001
            logger.warning("Failed to close agent stream", exc_info=True)

    def _on_interrupt(self, text: str) -> None:
        if self.state.is_streaming:
            self.state.pending_interrupt = text

    def _on_session_init(self, init: SessionInit) -> None:
        self.state.session_id = init.session_id or self.state.session_id
        self.state.model = init.model
        self.state.tools = list(init.tools)
        self.state.mcp_servers = list(init.mcp_servers)

    def _on_turn_result(self, result: TurnResult) -> None:
        if result.session_id:
            self.state.session_id = result.session_id

    # -- permissions ---------------------------------------------------------

    async def handle_can_use_tool(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        context: ToolPermissionContext,
    ) -> PermissionResultAllow | PermissionResultDeny:
        """Ask the user about one tool call. Concurrent requests are asked one at a time."""
        async with self._permission_lock:
            with log_context(tool=tool_name):
                log_event(logger, "permission.requested")
                self.renderer.show_permission_prompt(tool_name, tool_input)
                answer = await self.input.get_permission_input()
                allowed = answer is not PermissionAnswer.DENY
                self.renderer.show_permission_result(allowed, answer is PermissionAnswer.ALLOW_ALWAYS)
                log_event(logger, "permission.decided", answer=answer.value)
                return build_permission_result(answer, tool_input, context)
