"""Typed call-back surface from the bridge into the editor.

The bridge never asks the editor to evaluate code. It uses the fixed verb
set below, sent over the same JSON-RPC channel the editor uses to call the
bridge. One ``EditorHost`` is created at startup and shared by reference
with every session.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from acp import RequestError
from acp.connection import Connection

from agent_chat.display import fence_diff, unified_diff
from agent_chat.errors import TransportFailure

logger = logging.getLogger(__name__)

APPEND_TEXT = "editor/append_text"
CONFIGURE_PROMPT_BUFFER = "editor/configure_prompt_buffer"
SELECT = "editor/select"
FIND_BUFFER = "editor/find_buffer"
GET_BUFFER_LINES = "editor/get_buffer_lines"
SET_BUFFER_LINES = "editor/set_buffer_lines"
DIFF = "editor/diff"

METHOD_NOT_FOUND = -32601


class Host(ABC):
    """Operations the bridge needs from the editor."""

    @abstractmethod
    async def append_text(self, buffer_id: int, text: str) -> None:
        """Append text at the buffer's live input point."""

    @abstractmethod
    async def configure_prompt_buffer(self, buffer_id: int, session: dict[str, Any]) -> None:
        """Turn the buffer into a prompt surface bound to a session's mode state."""

    @abstractmethod
    async def select(self, title: str, items: list[str]) -> int:
        """Show a numbered list and return the 1-based choice (0 or out of range means none)."""

    @abstractmethod
    async def find_buffer(self, path: str) -> int | None:
        """Return the id of a loaded buffer for ``path``, if any."""

    @abstractmethod
    async def get_buffer_lines(self, buffer_id: int) -> list[str]:
        """Return every line of a buffer."""

    @abstractmethod
    async def set_buffer_lines(self, buffer_id: int, lines: list[str]) -> None:
        """Replace the full contents of a buffer."""

    async def diff(self, old_text: str, new_text: str) -> str:
        """Unified diff hunks (no file headers) between two blobs, "" when equal."""
        return unified_diff(old_text, new_text)

    async def render_diff(self, buffer_id: int, path: str, old_text: str | None, new_text: str) -> None:
        text = fence_diff(path, await self.diff(old_text or "", new_text))
        if text:
            await self.append_text(buffer_id, text)


class EditorHost(Host):
    """Host implementation speaking JSON-RPC to the editor."""

    def __init__(self, conn: Connection | None = None) -> None:
        self._conn = conn
        self._editor_diff = True

    def bind(self, conn: Connection) -> None:
        self._conn = conn

    @property
    def conn(self) -> Connection:
        if self._conn is None:
            raise TransportFailure("editor connection not established")
        return self._conn

    async def append_text(self, buffer_id: int, text: str) -> None:
        await self.conn.send_notification(APPEND_TEXT, {"buffer_id": buffer_id, "text": text})

    async def configure_prompt_buffer(self, buffer_id: int, session: dict[str, Any]) -> None:
        await self.conn.send_notification(CONFIGURE_PROMPT_BUFFER, {"buffer_id": buffer_id, "session": session})

    async def select(self, title: str, items: list[str]) -> int:
        result = await self.conn.send_request(SELECT, {"title": title, "items": items})
        try:
            return int(result)
        except (TypeError, ValueError):
            logger.warning("editor returned non-numeric selection: %r", result)
            return 0

    async def find_buffer(self, path: str) -> int | None:
        result = await self.conn.send_request(FIND_BUFFER, {"path": path})
        if isinstance(result, int) and result > 0:
            return result
        return None

    async def get_buffer_lines(self, buffer_id: int) -> list[str]:
        result = await self.conn.send_request(GET_BUFFER_LINES, {"buffer_id": buffer_id})
        if not isinstance(result, list):
            return []
        return [str(line) for line in result]

    async def set_buffer_lines(self, buffer_id: int, lines: list[str]) -> None:
        await self.conn.send_request(SET_BUFFER_LINES, {"buffer_id": buffer_id, "lines": lines})

    async def diff(self, old_text: str, new_text: str) -> str:
        """Ask the editor's diff primitive; editors without ``editor/diff`` get difflib."""
        if self._editor_diff:
            try:
                result = await self.conn.send_request(DIFF, {"old": old_text, "new": new_text})
            except RequestError as exc:
                if exc.code != METHOD_NOT_FOUND:
                    raise
                logger.info("editor has no %s verb, diffing locally", DIFF)
                self._editor_diff = False
            else:
                return result if isinstance(result, str) else ""
        return await super().diff(old_text, new_text)
