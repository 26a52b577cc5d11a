"""Welcome banner rendering for the interactive client."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from prompt_toolkit.utils import get_cwidth  # type: ignore
from rich.text import Text

if TYPE_CHECKING:
    from steer.client.display import Palette


def format_path(path: str | None) -> str:
    if not path:
        path = os.getcwd()
    resolved = Path(path).expanduser()
    try:
        resolved = resolved.resolve()
    except OSError:
        return str(resolved)
    home = Path.home()
    try:
        rel = resolved.relative_to(home)
    except ValueError:
        return str(resolved)
    return str(Path("~") / rel)


def build_welcome_banner(palette: Palette, *, version: str, model: str, cwd: str | None = None) -> Text:
    lines = [
        f"Steer v{version}",
        "Type /help for commands, Ctrl+C twice to exit.",
        "",
        f"Directory: {format_path(cwd)}",
        f"Model: {model}",
    ]
    content_width = max(_display_width(line) for line in lines)
    width = content_width + 2

    banner = Text()
    banner.append(f"╭{'─' * width}╮\n", style=palette.border)
    for idx, line in enumerate(lines):
        aligned = _center_to_width(line, content_width) if idx in {0, 1} else _pad_to_width(line, content_width)
        banner.append("│", style=palette.border)
        banner.append(f" {aligned} ", style=f"bold {palette.user}" if idx == 0 else palette.assistant)
        banner.append("│\n", style=palette.border)
    banner.append(f"╰{'─' * width}╯", style=palette.border)
    return banner


def _display_width(text: str) -> int:
    return get_cwidth(text)


def _pad_to_width(text: str, width: int) -> str:
    padding = max(0, width - _display_width(text))
    if padding:
        return f"{text}{' ' * padding}"
    return text


def _center_to_width(text: str, width: int) -> str:
    text_width = _display_width(text)
    if text_width >= width:
        return _pad_to_width(text, width)
    padding = width - text_width
    left = padding // 2
    right = padding - left
    return f"{' ' * left}{text}{' ' * right}"
