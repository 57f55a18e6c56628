from __future__ import annotations

from acp import text_block
from acp.schema import ImageContentBlock, PlanEntry, ResourceContentBlock

from agent_chat.display import (
    fence_diff,
    format_content_block,
    format_mode,
    format_plan,
    format_thought,
    format_tool,
    unified_diff,
)


def test_format_tool_variants() -> None:
    assert format_tool("Read file", "pending") == "\n🔧 Read file (pending)\n"
    assert format_tool("Read file", None) == "\n🔧 Read file\n"
    assert format_tool(None, "completed") == "\n🔧 completed\n"
    assert format_tool(None, None) == ""


def test_content_blocks() -> None:
    assert format_content_block(text_block("hi")) == "hi"
    assert format_content_block(ImageContentBlock(type="image", data="", mime_type="image/png")) == "<image>"
    resource = ResourceContentBlock(type="resource_link", name="doc", uri="file:///tmp/doc.md")
    assert format_content_block(resource) == "file:///tmp/doc.md"


def test_thought_plan_and_mode() -> None:
    assert format_thought("thinking") == "[Thought] thinking\n"
    entries = [
        PlanEntry(content="Read code", priority="high", status="completed"),
        PlanEntry(content="Write tests", priority="medium", status="in_progress"),
    ]
    assert format_plan(entries) == "[Plan update]\n- [completed] Read code\n- [in_progress] Write tests\n"
    assert format_mode("code") == "[Mode: code]\n"


def test_unified_diff_without_headers() -> None:
    body = unified_diff("a\nb\n", "a\nc\n")
    assert body.startswith("@@")
    assert "-b\n+c\n" in body
    assert "---" not in body


def test_fenced_diff_with_path_headers() -> None:
    text = fence_diff("/tmp/x.py", unified_diff("old\n", "new\n"))
    assert text.startswith("\n```diff\n--- /tmp/x.py\n+++ /tmp/x.py\n@@")
    assert text.endswith("+new\n```\n")


def test_fenced_diff_new_file_and_no_change() -> None:
    assert "+first" in fence_diff("/tmp/new.txt", unified_diff(None, "first"))
    assert fence_diff("/tmp/same.txt", unified_diff("same", "same")) == ""


def test_fence_diff_terminates_editor_hunks() -> None:
    assert fence_diff("/tmp/x.py", "@@ -1 +1 @@\n-a\n+b") == "\n```diff\n--- /tmp/x.py\n+++ /tmp/x.py\n@@ -1 +1 @@\n-a\n+b\n```\n"
    assert fence_diff("/tmp/x.py", "") == ""
