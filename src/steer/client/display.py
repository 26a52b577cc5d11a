"""Rich-based terminal renderer for the interactive client.

Output is rendered with rich into a buffer and handed to prompt_toolkit's
`print_formatted_text`, so it lands above the live prompt while the user is
typing. Passing `file=` renders plain text into that file instead, which is
what tests use.
"""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from io import StringIO
from threading import Lock
from typing import TYPE_CHECKING, Any, Iterable, TextIO

from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import clear as clear_screen  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console, RenderableType
from rich.status import Status
from rich.syntax import Syntax
from rich.text import Text

from steer.client.status_box import build_welcome_banner
from steer.config import ColorScheme, SpinnerStyle, UIConfig

if TYPE_CHECKING:
    from steer.agent.messages import TurnResult

FENCE = "```"
CHECK = "✓"
CROSS = "✗"
WARNING = "⚠"
INFO = "ℹ"
BAR = "│"
RULE = "─"

_SPINNERS: dict[SpinnerStyle, str] = {
    "braille": "dots",
    "dots": "point",
    "minimal": "line",
}


@dataclass(frozen=True)
class Palette:
    """Rich style strings for each kind of output."""

    user: str
    assistant: str
    thinking: str
    tool: str
    tool_output: str
    error: str
    success: str
    warning: str
    stats: str
    border: str
    dim: str


PALETTES: dict[ColorScheme, Palette] = {
    "default": Palette(
        user="#87ceeb",
        assistant="#f5f5f5",
        thinking="#f9e2af",
        tool="#b48ead",
        tool_output="#6c7086",
        error="#f38ba8",
        success="#a6e3a1",
        warning="#fab387",
        stats="#89b4fa",
        border="#45475a",
        dim="#6c7086",
    ),
    "light": Palette(
        user="#0077b6",
        assistant="#1a1a2e",
        thinking="#b8860b",
        tool="#7b2cbf",
        tool_output="#6c757d",
        error="#dc3545",
        success="#198754",
        warning="#fd7e14",
        stats="#0d6efd",
        border="#dee2e6",
        dim="#adb5bd",
    ),
    "minimal": Palette(
        user="white",
        assistant="white",
        thinking="bright_black",
        tool="bright_black",
        tool_output="bright_black",
        error="red",
        success="green",
        warning="yellow",
        stats="bright_black",
        border="bright_black",
        dim="bright_black",
    ),
}


def palette_for(scheme: ColorScheme) -> Palette:
    return PALETTES.get(scheme, PALETTES["default"])


def format_duration(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    minutes, rest = divmod(ms, 60_000)
    return f"{minutes}m {rest // 1000}s"


def tool_brief(tool_name: str, tool_input: dict[str, Any] | None) -> str:
    """One-line summary of a tool call's most telling argument."""
    if not tool_input:
        return ""
    if tool_name in {"Read", "Write", "Edit", "MultiEdit", "NotebookEdit"}:
        return str(tool_input.get("file_path") or tool_input.get("notebook_path") or "")
    if tool_name == "Bash":
        command = str(tool_input.get("command") or "")
        return command if len(command) <= 40 else f"{command[:40]}..."
    if tool_name in {"Glob", "Grep"}:
        return str(tool_input.get("pattern") or "")
    if tool_name == "WebFetch":
        return str(tool_input.get("url") or "")
    if tool_name == "WebSearch":
        return str(tool_input.get("query") or "")
    return ""


class ThinkingStatus:
    def __init__(self, console: Console) -> None:
        self._console = console
        self._lock = Lock()
        self._status: Status | None = None

    def start(self, text: str, *, spinner: str, style: str) -> None:
        with self._lock:
            if self._status is not None:
                self._status.update(Text(text, style=style))
                return
            self._status = self._console.status(Text(text, style=style), spinner=spinner)
            self._status.start()

    def stop(self) -> None:
        with self._lock:
            if self._status is None:
                return
            self._status.stop()
            self._status = None


class Renderer:
    def __init__(self, ui: UIConfig, *, file: TextIO | None = None, width: int | None = None) -> None:
        self._ui = ui
        self._palette = palette_for(ui.color_scheme)
        self._file = file
        self._width = width or shutil.get_terminal_size((80, 24)).columns
        self._render_buffer = StringIO()
        self._render_console = Console(
            file=self._render_buffer,
            force_terminal=file is None,
            color_system="truecolor" if file is None else None,
            markup=False,
            highlight=False,
            width=self._width,
        )
        self._render_lock = Lock()
        self._spinner = None if file is not None else ThinkingStatus(
            Console(force_terminal=True, color_system="truecolor", markup=False, highlight=False)
        )
        self._reset_stream()

    # -- low-level output ----------------------------------------------------

    def _print(self, *renderables: RenderableType, end: str = "\n", soft_wrap: bool = False) -> None:
        with self._render_lock:
            self._render_buffer.seek(0)
            self._render_buffer.truncate(0)
            self._render_console.print(*renderables, end=end, soft_wrap=soft_wrap)
            output = self._render_buffer.getvalue()
        if not output:
            return
        if self._file is not None:
            self._file.write(output)
            self._file.flush()
        else:
            print_formatted_text(ANSI(output), end="")

    def _line(self, *parts: tuple[str, str]) -> None:
        text = Text()
        for content, style in parts:
            text.append(content, style=style)
        self._print(text)

    def _blank(self) -> None:
        self._print(Text(""))

    # -- session chrome ------------------------------------------------------

    def show_welcome(self, version: str, model: str, cwd: str | None = None) -> None:
        self._blank()
        self._print(build_welcome_banner(self._palette, version=version, model=model, cwd=cwd))
        self._blank()

    def show_session_init(self, tools: list[str], mcp_servers: list[str]) -> None:
        if tools:
            more = f" +{len(tools) - 5} more" if len(tools) > 5 else ""
            self._line((f"Tools: {', '.join(tools[:5])}{more}", self._palette.dim))
        if mcp_servers:
            self._line((f"MCP Servers: {', '.join(mcp_servers)}", self._palette.dim))
        if tools or mcp_servers:
            self._blank()

    def show_help(self, commands: Iterable[tuple[str, str]]) -> None:
        self._blank()
        self._line(("Commands:", self._palette.stats))
        for hint, description in commands:
            self._line((f"  {hint:<12} {description}", ""))
        self._blank()
        self._line(("Tips:", self._palette.stats))
        self._line(("  • Type while the agent is responding to interrupt it with more context", ""))
        self._line(("  • End a line with \\ or press Alt+Enter to continue on a new line", ""))
        self._line(("  • Ctrl+C sends a half-typed interrupt, cancels multiline input, or exits when pressed twice", ""))
        self._blank()

    def show_history(self, entries: list[str]) -> None:
        if not entries:
            self.show_info("History is empty")
            return
        for index, entry in enumerate(entries, start=1):
            first, *rest = entry.split("\n")
            suffix = f" (+{len(rest)} lines)" if rest else ""
            self._line((f"{index:>3}  ", self._palette.dim), (first, self._palette.user), (suffix, self._palette.dim))

    def clear(self) -> None:
        self.stop_spinner()
        if self._file is None:
            clear_screen()

    # -- streaming text ------------------------------------------------------

    def _reset_stream(self) -> None:
        self._line_buffer = ""
        self._emitted = 0
        self._wrote_any = False
        self._ends_with_newline = True
        self._in_code_block = False
        self._code_lang = ""
        self._code_lines: list[str] = []

    def start_stream(self) -> None:
        self._reset_stream()

    def _emit_text(self, text: str) -> None:
        if not text:
            return
        self._print(Text(text, style=self._palette.assistant), end="", soft_wrap=True)
        self._wrote_any = True
        self._ends_with_newline = text.endswith("\n")

    def _could_be_fence(self, partial: str) -> bool:
        head = partial.lstrip()
        return head.startswith(FENCE) or FENCE.startswith(head)

    def stream_token(self, token: str) -> None:
        self.stop_spinner()
        for piece in token.splitlines(keepends=True):
            self._line_buffer += piece
            if piece.endswith("\n"):
                self._finish_line()
            elif not self._in_code_block and not self._could_be_fence(self._line_buffer):
                self._emit_text(self._line_buffer[self._emitted :])
                self._emitted = len(self._line_buffer)

    def _finish_line(self) -> None:
        line, self._line_buffer = self._line_buffer, ""
        emitted, self._emitted = self._emitted, 0
        stripped = line.strip()
        if stripped.startswith(FENCE) and emitted == 0:
            if self._in_code_block:
                self._flush_code_block()
            else:
                self._in_code_block = True
                self._code_lang = stripped[len(FENCE) :].strip()
                self._print(Text(f"{FENCE}{self._code_lang}", style=self._palette.border))
                self._wrote_any = True
                self._ends_with_newline = True
            return
        if self._in_code_block:
            self._code_lines.append(line)
            return
        self._emit_text(line[emitted:])

    def _flush_code_block(self) -> None:
        code = "".join(self._code_lines).rstrip("\n")
        theme = "ansi_light" if self._ui.color_scheme == "light" else "ansi_dark"
        self._print(Syntax(code, self._code_lang or "text", theme=theme, background_color="default"))
        self._print(Text(FENCE, style=self._palette.border))
        self._in_code_block = False
        self._code_lang = ""
        self._code_lines = []
        self._wrote_any = True
        self._ends_with_newline = True

    def complete_stream(self) -> None:
        if self._line_buffer:
            if self._in_code_block:
                self._code_lines.append(self._line_buffer)
            else:
                self._emit_text(self._line_buffer[self._emitted :])
            self._line_buffer = ""
            self._emitted = 0
        if self._in_code_block:
            self._flush_code_block()
        if self._wrote_any and not self._ends_with_newline:
            self._blank()
        self._blank()
        self._reset_stream()

    # -- spinners and tools --------------------------------------------------

    def show_thinking(self, message: str = "Thinking") -> None:
        if self._spinner is not None:
            self._spinner.start(f"{message}...", spinner=_SPINNERS[self._ui.spinner_style], style=self._palette.thinking)

    def stop_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()

    def show_tool_start(self, tool_name: str, tool_input: dict[str, Any] | None = None) -> None:
        self.stop_spinner()
        brief = tool_brief(tool_name, tool_input)
        self._blank()
        self._line((f"{BAR} ", self._palette.border), (f"tool:{tool_name}", self._palette.tool), (f" {brief}" if brief else "", self._palette.dim))
        self._line((f"{BAR} {RULE * 40}", self._palette.border))
        if self._spinner is not None:
            self._spinner.start(f"Running {tool_name}...", spinner=_SPINNERS[self._ui.spinner_style], style=self._palette.tool)

    def show_tool_complete(self, tool_name: str, success: bool = True) -> None:
        self.stop_spinner()
        if success:
            self._line((f"{CHECK} ", self._palette.success), (f"{tool_name} completed", self._palette.tool_output))
        else:
            self._line((f"{CROSS} ", self._palette.error), (f"{tool_name} failed", self._palette.tool_output))

    # -- stats and notices ---------------------------------------------------

    def show_stats(self, result: TurnResult) -> None:
        ui = self._ui
        if not (ui.show_timing or ui.show_token_counts or ui.show_cost):
            return
        parts: list[str] = []
        if ui.show_timing:
            parts.append(f"⏱  {format_duration(result.duration_ms)}")
        if ui.show_token_counts:
            parts.append(f"↑ {result.input_tokens:,}")
            parts.append(f"↓ {result.output_tokens:,}")
        if ui.show_cost and result.cost_usd is not None:
            parts.append(f"${result.cost_usd:.4f}")
        self._line((RULE * self._width, self._palette.border))
        self._line((f"  {BAR}  ".join(parts), self._palette.stats))
        self._blank()

    def show_error(self, error: BaseException | str) -> None:
        self.stop_spinner()
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
        else:
            message = error
        self._line((f"{CROSS} ", self._palette.error), ("Error: ", self._palette.error), (message, ""))

    def show_warning(self, message: str) -> None:
        self._line((f"{WARNING} ", self._palette.warning), (message, self._palette.warning))

    def show_info(self, message: str) -> None:
        self._line((f"{INFO} ", self._palette.stats), (message, ""))

    def show_success(self, message: str) -> None:
        self._line((f"{CHECK} ", self._palette.success), (message, ""))

    def show_interrupt(self, message: str) -> None:
        self._blank()
        self._line(("⚡ ", self._palette.warning), ("Interrupt: ", self._palette.warning), (message, self._palette.user))
        self._blank()

    # -- permissions ---------------------------------------------------------

    def show_permission_prompt(self, tool_name: str, tool_input: dict[str, Any] | None = None) -> None:
        self.stop_spinner()
        brief = tool_brief(tool_name, tool_input)
        if not brief and tool_input:
            brief = json.dumps(tool_input, ensure_ascii=False, default=str)
            if len(brief) > 120:
                brief = f"{brief[:117]}..."
        self._blank()
        self._line((f"{WARNING} ", self._palette.warning), ("Permission required: ", self._palette.warning), (tool_name, self._palette.tool))
        if brief:
            self._line((f"  {brief}", self._palette.dim))
        self._line(("  Allow? [y]es / [n]o / [a]lways", ""))

    def show_permission_reprompt(self) -> None:
        self._line(("  Please enter y/n/a", self._palette.warning))

    def show_permission_result(self, allowed: bool, always: bool = False) -> None:
        if allowed and always:
            self._line((f"  {CHECK} ", self._palette.success), ("Allowed (always)", self._palette.dim))
        elif allowed:
            self._line((f"  {CHECK} ", self._palette.success), ("Allowed", self._palette.dim))
        else:
            self._line((f"  {CROSS} ", self._palette.error), ("Denied", self._palette.dim))
        self._blank()
