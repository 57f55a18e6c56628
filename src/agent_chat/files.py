"""Buffer-aware implementations of the ACP file-system capability.

See: https://agentclientprotocol.com/protocol/file-system

An agent's view of a file prefers the editor's live (possibly unsaved)
buffer over what is on disk, for both reads and writes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agent_chat.errors import InvalidPath
from agent_chat.host import Host
from agent_chat.log_utils import log_event

logger = logging.getLogger(__name__)

DIR_MODE = 0o755
FILE_MODE = 0o644


def require_absolute(path: str) -> Path:
    if not path or not Path(path).is_absolute():
        raise InvalidPath(path)
    return Path(path)


def slice_lines(lines: list[str], line: int | None, limit: int | None) -> list[str]:
    """Apply a 1-based start line and a line limit, clamping both to the content."""
    start = 0
    if line is not None and line > 0:
        start = min(line - 1, len(lines))
    end = len(lines)
    if limit is not None and limit > 0:
        end = min(start + limit, end)
    return lines[start:end]


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


async def read_text_file(
    host: Host,
    chat_buffer: int,
    path: str,
    line: int | None = None,
    limit: int | None = None,
) -> str:
    """Serve fs/read_text_file and report the read into the chat buffer."""
    target = require_absolute(path)

    buffer_id = await host.find_buffer(path)
    if buffer_id is not None:
        lines = await host.get_buffer_lines(buffer_id)
        content = "\n".join(slice_lines(lines, line, limit))
        log_event(logger, "fs.read", source="buffer", path=path, buffer=buffer_id, bytes=_byte_len(content))
        await host.append_text(chat_buffer, f"[Read {path} ({_byte_len(content)} bytes) from buffer]\n")
        return content

    content = target.read_text(encoding="utf-8", errors="replace")
    if line is not None or limit is not None:
        content = "\n".join(slice_lines(content.split("\n"), line, limit))
    log_event(logger, "fs.read", source="disk", path=path, bytes=_byte_len(content))
    await host.append_text(chat_buffer, f"[Read {path} ({_byte_len(content)} bytes)]\n")
    return content


async def write_text_file(host: Host, chat_buffer: int, path: str, content: str) -> None:
    """Serve fs/write_text_file, into a live buffer when one is open for the path."""
    target = require_absolute(path)
    size = _byte_len(content)

    buffer_id = await host.find_buffer(path)
    if buffer_id is not None:
        await host.set_buffer_lines(buffer_id, content.split("\n"))
        log_event(logger, "fs.write", source="buffer", path=path, buffer=buffer_id, bytes=size)
        await host.append_text(chat_buffer, f"[Wrote {size} bytes to buffer {path}]\n")
        return

    target.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    existed = target.exists()
    target.write_text(content, encoding="utf-8")
    if not existed:
        target.chmod(FILE_MODE)
    log_event(logger, "fs.write", source="disk", path=path, bytes=size)
    await host.append_text(chat_buffer, f"[Wrote {size} bytes to {path}]\n")
