"""Lightweight session state shared across client components."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SessionState:
    model: str
    cwd: str
    is_streaming: bool = False
    pending_interrupt: str | None = None
    turn_count: int = 0
    session_id: str | None = None
    tools: list[str] = field(default_factory=list)
    mcp_servers: list[str] = field(default_factory=list)
