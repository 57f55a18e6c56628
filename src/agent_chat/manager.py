"""Session table and the host-facing verbs.

The table lock is held only for membership checks and mutation, never
across a protocol call, so one slow agent cannot stall the others. A
buffer id is reserved while its handshake runs; a racing second
``new_session`` for the same buffer therefore fails with AlreadyExists.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Sequence

from acp import text_block

from agent_chat.errors import (
    AlreadyExists,
    BridgeError,
    EmptyPrompt,
    NotFound,
    PromptInFlight,
    ProtocolError,
    SpawnFailure,
    TransportFailure,
)
from agent_chat.host import Host
from agent_chat.log_utils import log_event, session_context
from agent_chat.mcp_config import build_mcp_servers
from agent_chat.session import EXIT_GRACE_S, Session, reap
from agent_chat.settings import BridgeSettings

logger = logging.getLogger(__name__)

CLOSED_NOTICE = "Connection closed.\n"
CANCELLED_NOTICE = "Cancelled.\n"


def format_error(exc: BaseException) -> str:
    """Error line rendered into a chat buffer."""
    if isinstance(exc, ProtocolError):
        return f"Error: {json.dumps(exc.to_error_obj())}\n"
    return f"Error: {exc}\n"


class SessionManager:
    def __init__(self, host: Host, settings: BridgeSettings | None = None) -> None:
        self._host = host
        self._settings = settings or BridgeSettings()
        self._lock = asyncio.Lock()
        self._sessions: dict[int, Session] = {}

    def __contains__(self, buffer_id: object) -> bool:
        return buffer_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, buffer_id: int) -> Session | None:
        return self._sessions.get(buffer_id)

    async def _live(self, buffer_id: int) -> Session:
        async with self._lock:
            session = self._sessions.get(buffer_id)
        if session is None or not session.ready:
            raise NotFound(buffer_id)
        return session

    async def new_session(
        self,
        buffer_id: int,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
        mcp: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Spawn an agent for ``buffer_id`` and run the ACP handshake.

        Nothing stays registered if any stage fails.
        """
        if not command:
            raise SpawnFailure("no agent command given")
        mcp_servers = build_mcp_servers(mcp)

        session = Session(buffer_id=buffer_id, auto_approve=self._settings.auto_approve)
        async with self._lock:
            if buffer_id in self._sessions:
                raise AlreadyExists(buffer_id)
            self._sessions[buffer_id] = session

        with session_context(buffer_id):
            try:
                await session.start(self._host, command, env or {}, mcp_servers, self._settings)
            except BaseException as exc:
                async with self._lock:
                    if self._sessions.get(buffer_id) is session:
                        del self._sessions[buffer_id]
                await session.close()
                if isinstance(exc, BridgeError):
                    log_event(logger, "session.start_failed", level=logging.WARNING, kind=exc.kind, error=str(exc))
                raise

            metadata = session.metadata()
            await self._host.configure_prompt_buffer(buffer_id, metadata)
            return metadata

    async def send_prompt(self, buffer_id: int, text: str) -> str:
        """Forward one text prompt and wait for the agent's stop reason."""
        if not text:
            raise EmptyPrompt()
        session = await self._live(buffer_id)
        if session.prompt_in_flight:
            raise PromptInFlight(buffer_id)

        session.prompt_in_flight = True
        with session_context(buffer_id, session.session_id):
            log_event(logger, "session.prompt", chars=len(text))
            try:
                response = await session.call(
                    "session/prompt",
                    session.connection.prompt(prompt=[text_block(text)], session_id=session.session_id),
                )
            except BridgeError as exc:
                await self._host.append_text(buffer_id, format_error(exc))
                log_event(logger, "session.prompt_failed", level=logging.WARNING, kind=exc.kind, error=str(exc))
                if isinstance(exc, TransportFailure):
                    await self._drop_if_dead(session)
                raise
            finally:
                session.prompt_in_flight = False

            stop_reason = str(getattr(response, "stop_reason", "") or "")
            log_event(logger, "session.prompt_done", stop_reason=stop_reason)
            return stop_reason

    async def cancel(self, buffer_id: int) -> None:
        """Ask the agent to stop the current turn; the prompt call resolves on its own."""
        session = await self._live(buffer_id)
        with session_context(buffer_id, session.session_id):
            try:
                await session.call("session/cancel", session.connection.cancel(session_id=session.session_id))
            except BridgeError as exc:
                await self._host.append_text(buffer_id, format_error(exc))
                log_event(logger, "session.cancel_failed", level=logging.WARNING, kind=exc.kind, error=str(exc))
                if isinstance(exc, TransportFailure):
                    await self._drop_if_dead(session)
                raise
            log_event(logger, "session.cancelled")
            await self._host.append_text(buffer_id, CANCELLED_NOTICE)

    async def set_mode(self, buffer_id: int, mode_id: str) -> str:
        """Switch the session mode; the stored mode changes only once the agent accepts."""
        session = await self._live(buffer_id)
        with session_context(buffer_id, session.session_id):
            try:
                await session.call(
                    "session/set_mode",
                    session.connection.set_session_mode(mode_id=mode_id, session_id=session.session_id),
                )
            except BridgeError as exc:
                log_event(logger, "session.set_mode_failed", level=logging.WARNING, mode=mode_id, error=str(exc))
                raise
            session.current_mode_id = mode_id
            log_event(logger, "session.mode", mode=mode_id)
            return mode_id

    async def stop(self, buffer_id: int) -> None:
        """Kill the agent, drop the table entry and tell the buffer."""
        async with self._lock:
            session = self._sessions.get(buffer_id)
            if session is None or not session.ready:
                raise NotFound(buffer_id)
            del self._sessions[buffer_id]
            process, connection = session.detach()
        await reap(process, connection)
        await session.close()
        log_event(logger, "session.stopped", buffer_id=buffer_id)
        await self._host.append_text(buffer_id, CLOSED_NOTICE)

    async def shutdown(self) -> None:
        """Stop every live session; used when the editor goes away."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            detached = [session.detach() for session in sessions]
        await asyncio.gather(*(reap(process, connection) for process, connection in detached))
        await asyncio.gather(*(session.close() for session in sessions))
        if sessions:
            log_event(logger, "bridge.shutdown", sessions=len(sessions))

    async def _drop_if_dead(self, session: Session) -> None:
        """Process-exit cleanup, triggered by a call that found the transport gone."""
        if not (session.exited or session.scope.cancelled):
            if session.process is None:
                return
            try:
                await asyncio.wait_for(session.process.wait(), EXIT_GRACE_S)
            except asyncio.TimeoutError:
                return
        async with self._lock:
            if self._sessions.get(session.buffer_id) is not session:
                return
            del self._sessions[session.buffer_id]
            process, connection = session.detach()
        await reap(process, connection)
        await session.close()
        log_event(logger, "session.exited", buffer_id=session.buffer_id)
        await self._host.append_text(session.buffer_id, CLOSED_NOTICE)
