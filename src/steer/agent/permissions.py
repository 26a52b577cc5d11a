"""Translate a user's permission answer into the agent SDK's decision type."""

from __future__ import annotations

from typing import Any

from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny, ToolPermissionContext

from steer.client.events import PermissionAnswer

DENY_MESSAGE = "User denied permission for this tool"


def build_permission_result(
    answer: PermissionAnswer,
    tool_input: dict[str, Any],
    context: ToolPermissionContext | None = None,
) -> PermissionResultAllow | PermissionResultDeny:
    """Allow once, allow always (carrying the SDK's suggested rule updates), or deny."""
    if answer is PermissionAnswer.ALLOW_ONCE:
        return PermissionResultAllow(updated_input=tool_input)
    if answer is PermissionAnswer.ALLOW_ALWAYS:
        suggestions = list(getattr(context, "suggestions", None) or [])
        return PermissionResultAllow(updated_input=tool_input, updated_permissions=suggestions or None)
    return PermissionResultDeny(message=DENY_MESSAGE, interrupt=False)
