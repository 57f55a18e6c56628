"""Plain-text rendering of ACP session updates for chat buffers.

Every function here is pure: it returns the exact text appended to the
bound buffer, so the prefix conventions stay stable and easy to test.
"""

from __future__ import annotations

import difflib
from typing import Any, Iterable

from acp.schema import (
    AudioContentBlock,
    EmbeddedResourceContentBlock,
    FileEditToolCallContent,
    ImageContentBlock,
    ResourceContentBlock,
    TextContentBlock,
)

TOOL_ICON = "🔧"


def format_content_block(content: Any) -> str:
    if isinstance(content, TextContentBlock):
        return content.text
    if isinstance(content, ImageContentBlock):
        return "<image>"
    if isinstance(content, AudioContentBlock):
        return "<audio>"
    if isinstance(content, ResourceContentBlock):
        return content.uri or "<resource>"
    if isinstance(content, EmbeddedResourceContentBlock):
        return "<resource>"
    text = getattr(content, "text", None)
    if isinstance(text, str):
        return text
    return "<content>"


def format_thought(text: str) -> str:
    return f"[Thought] {text}\n"


def format_tool(title: str | None, status: str | None) -> str:
    """Header line for a tool call or tool call update."""
    if title and status:
        return f"\n{TOOL_ICON} {title} ({status})\n"
    if title:
        return f"\n{TOOL_ICON} {title}\n"
    if status:
        return f"\n{TOOL_ICON} {status}\n"
    return ""


def format_plan(entries: Iterable[Any]) -> str:
    lines = ["[Plan update]"]
    for entry in entries:
        status = getattr(entry, "status", None) or "pending"
        content = str(getattr(entry, "content", "") or "").strip()
        if content:
            lines.append(f"- [{status}] {content}")
    return "\n".join(lines) + "\n"


def format_mode(mode_id: str) -> str:
    return f"[Mode: {mode_id}]\n"


def unified_diff(old_text: str | None, new_text: str) -> str:
    """Hunks only (no file headers) between two text blobs."""
    old_lines = (old_text or "").splitlines()
    new_lines = new_text.splitlines()
    lines = list(difflib.unified_diff(old_lines, new_lines, lineterm=""))
    if not lines:
        return ""
    # Drop difflib's own ---/+++ header lines; callers print the path themselves.
    return "\n".join(lines[2:]) + "\n"


def fence_diff(path: str, body: str) -> str:
    """Wrap diff hunks in a ```diff fence with the path on both header lines."""
    if not body:
        return ""
    if not body.endswith("\n"):
        body += "\n"
    return f"\n```diff\n--- {path}\n+++ {path}\n{body}```\n"


def iter_tool_content(content: Iterable[Any] | None) -> Iterable[tuple[str, Any]]:
    """Yield ("text", str) and ("diff", FileEditToolCallContent) items from tool call content."""
    for item in content or []:
        if isinstance(item, FileEditToolCallContent) or getattr(item, "type", "") == "diff":
            yield "diff", item
            continue
        inner = getattr(item, "content", None)
        if inner is not None:
            text = getattr(inner, "text", None)
            if isinstance(text, str) and text:
                yield "text", text
