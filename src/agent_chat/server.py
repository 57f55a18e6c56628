"""Editor-facing JSON-RPC endpoint on the bridge's own stdin/stdout.

The editor drives sessions with the ``session/*`` methods below; the same
connection carries the bridge's ``editor/*`` call-backs (see ``host``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from acp import RequestError, stdio_streams
from acp.connection import Connection
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agent_chat.errors import BridgeError
from agent_chat.host import EditorHost
from agent_chat.log_utils import log_event
from agent_chat.manager import SessionManager
from agent_chat.settings import BridgeSettings

logger = logging.getLogger(__name__)

NEW_SESSION = "session/new"
PROMPT = "session/prompt"
CANCEL = "session/cancel"
SET_MODE = "session/set_mode"
STOP = "session/stop"


class BufferParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    buffer_id: int = Field(..., description="Editor buffer the session is bound to")


class NewSessionParams(BufferParams):
    command: list[str] = Field(..., min_length=1, description="Agent program followed by its arguments")
    env: dict[str, str] = Field(default_factory=dict, description="Overrides layered on the bridge environment")
    mcp: dict[str, dict[str, Any]] = Field(default_factory=dict, description="MCP servers by name")


class PromptParams(BufferParams):
    text: str = Field("", description="Prompt text sent as a single text block")


class SetModeParams(BufferParams):
    mode_id: str = Field(..., min_length=1)


class HostServer:
    """Dispatches editor requests onto the session manager."""

    def __init__(self, manager: SessionManager) -> None:
        self._manager = manager
        self._routes: dict[str, Callable[[Any], Awaitable[Any]]] = {
            NEW_SESSION: self._new_session,
            PROMPT: self._prompt,
            CANCEL: self._cancel,
            SET_MODE: self._set_mode,
            STOP: self._stop,
        }

    async def handle(self, method: str, params: Any, is_notification: bool) -> Any:
        route = self._routes.get(method)
        if route is None:
            if is_notification:
                log_event(logger, "editor.notification.ignored", method=method)
                return None
            raise RequestError.method_not_found(method)
        try:
            return await route(params or {})
        except ValidationError as exc:
            raise RequestError.invalid_params({"errors": exc.errors(include_url=False)}) from None
        except BridgeError as exc:
            log_event(logger, "editor.request_failed", level=logging.WARNING, method=method, kind=exc.kind)
            raise exc.to_request_error() from exc

    async def _new_session(self, params: Any) -> dict[str, Any]:
        args = NewSessionParams.model_validate(params)
        return await self._manager.new_session(args.buffer_id, args.command, env=args.env, mcp=args.mcp)

    async def _prompt(self, params: Any) -> dict[str, Any]:
        args = PromptParams.model_validate(params)
        stop_reason = await self._manager.send_prompt(args.buffer_id, args.text)
        return {"stop_reason": stop_reason}

    async def _cancel(self, params: Any) -> None:
        args = BufferParams.model_validate(params)
        await self._manager.cancel(args.buffer_id)

    async def _set_mode(self, params: Any) -> dict[str, Any]:
        args = SetModeParams.model_validate(params)
        return {"mode_id": await self._manager.set_mode(args.buffer_id, args.mode_id)}

    async def _stop(self, params: Any) -> None:
        args = BufferParams.model_validate(params)
        await self._manager.stop(args.buffer_id)


class _EofReader:
    """Stream reader proxy that records when the editor closes its end."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader
        self.closed = asyncio.Event()

    async def readline(self) -> bytes:
        line = await self._reader.readline()
        if not line:
            self.closed.set()
        return line

    def __getattr__(self, name: str) -> Any:
        return getattr(self._reader, name)


async def serve(settings: BridgeSettings) -> int:
    """Serve the editor on stdio until it disconnects, then stop every agent."""
    reader, writer = await stdio_streams()
    editor_reader = _EofReader(reader)

    host = EditorHost()
    manager = SessionManager(host, settings)
    server = HostServer(manager)
    conn = Connection(server.handle, writer, editor_reader)  # type: ignore[arg-type]
    host.bind(conn)
    log_event(logger, "bridge.started", cwd=settings.session_cwd(), auto_approve=settings.auto_approve)

    try:
        await editor_reader.closed.wait()
    finally:
        await manager.shutdown()
        await conn.close()
        log_event(logger, "bridge.stopped")
    return 0
