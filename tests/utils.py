from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable

from agent_chat.host import Host

FAKE_AGENT = Path(__file__).with_name("fake_agent.py")


def fake_agent_command() -> list[str]:
    """Command line that launches the scriptable test agent."""

    return [sys.executable, str(FAKE_AGENT)]


class RecordingHost(Host):
    """In-memory editor: records appended text and serves buffers from a dict."""

    def __init__(self, *, selection: int | Exception = 0, buffers: dict[str, list[str]] | None = None) -> None:
        self.selection = selection
        self.appended: dict[int, list[str]] = {}
        self.configured: dict[int, dict[str, Any]] = {}
        self.selects: list[tuple[str, list[str]]] = []
        self.paths: dict[str, int] = {}
        self.buffers: dict[int, list[str]] = {}
        for index, (path, lines) in enumerate((buffers or {}).items(), start=100):
            self.paths[path] = index
            self.buffers[index] = list(lines)

    def text(self, buffer_id: int) -> str:
        return "".join(self.appended.get(buffer_id, []))

    async def append_text(self, buffer_id: int, text: str) -> None:
        self.appended.setdefault(buffer_id, []).append(text)

    async def configure_prompt_buffer(self, buffer_id: int, session: dict[str, Any]) -> None:
        self.configured[buffer_id] = session

    async def select(self, title: str, items: list[str]) -> int:
        self.selects.append((title, items))
        if isinstance(self.selection, Exception):
            raise self.selection
        return self.selection

    async def find_buffer(self, path: str) -> int | None:
        return self.paths.get(path)

    async def get_buffer_lines(self, buffer_id: int) -> list[str]:
        return list(self.buffers[buffer_id])

    async def set_buffer_lines(self, buffer_id: int, lines: list[str]) -> None:
        self.buffers[buffer_id] = list(lines)


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll until ``predicate`` holds; session updates are delivered as notifications."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
